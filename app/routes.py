import logging, re, time
from datetime import datetime
from flask import jsonify, request
from markupsafe import Markup, escape

import config
from app import app, get_engine
from app.search import normalize_tokens
from crawler.errors import InvalidURLError

# --- Rate Limiter ---
RATE_LIMIT = {}


def check_rate_limit(ip):
    now = time.time()
    if len(RATE_LIMIT) > 10000:
        RATE_LIMIT.clear()

    if ip not in RATE_LIMIT:
        RATE_LIMIT[ip] = (now, 1)
        return True

    start, count = RATE_LIMIT[ip]
    if now - start > config.RATE_LIMIT_WINDOW:
        # Reset window
        RATE_LIMIT[ip] = (now, 1)
        return True

    if count >= config.RATE_LIMIT_MAX:
        return False

    RATE_LIMIT[ip] = (start, count + 1)
    return True


def format_timestamp(ts):
    if ts is None:
        return None
    return datetime.fromtimestamp(ts).strftime("%H:%M:%S %d/%m/%Y")


def highlight(snippet, terms):
    if not terms:
        return escape(snippet)
    pattern = re.compile(r"(?<!\w)(" + "|".join(re.escape(t) for t in terms) + r")(?!\w)", re.I)
    out, pos = Markup(""), 0
    for m in pattern.finditer(snippet):
        out += escape(snippet[pos:m.start()]) + Markup("<b>%s</b>") % m.group(0)
        pos = m.end()
    return out + escape(snippet[pos:])


def _form_value(key):
    data = request.get_json(silent=True) or {}
    if key in data:
        return data[key]
    return request.form.get(key)


# -------------------------
# Routes
# -------------------------
@app.route("/search")
def search():
    if not check_rate_limit(request.remote_addr):
        return jsonify(error="Rate limit exceeded. Try again later."), 429

    raw_query = request.args.get("q", "").strip()[:config.MAX_QUERY_LENGTH]
    page = max(1, request.args.get("page", 1, type=int))

    start_time = time.time()
    found = get_engine().search(raw_query, limit=config.PER_PAGE, offset=(page - 1) * config.PER_PAGE)
    terms = normalize_tokens(raw_query)

    results = [{
        "url": r.url,
        "title": r.title,
        "snippet": r.snippet,
        "snippet_html": str(highlight(r.snippet, terms)),
        "score": r.score,
        "language": r.language,
        "updated_at": r.updated_at,
        "updated": format_timestamp(r.updated_at),
    } for r in found.results]

    return jsonify(
        query=raw_query,
        page=page,
        total=found.total_matches,
        results=results,
        elapsed=round(time.time() - start_time, 4),
    )


@app.route("/admin/crawl", methods=["POST"])
def admin_crawl():
    url = _form_value("url")
    if not url:
        return jsonify(error="No URL provided."), 400
    try:
        added = get_engine().enqueue_url(url)
    except InvalidURLError:
        return jsonify(error=f"{url} is an invalid URL."), 400
    msg = f"Added {url} to queue." if added else f"{url} is already queued."
    return jsonify(queued=added, message=msg)


@app.route("/admin/domains", methods=["GET"])
def admin_domains():
    domains = get_engine().list_domains()
    return jsonify(domains=[{
        "name": d.name,
        "enabled": d.enabled,
        "last_crawled_at": d.last_crawled_at,
        "last_crawled": format_timestamp(d.last_crawled_at),
    } for d in domains])


@app.route("/admin/domains", methods=["POST"])
def admin_set_domain():
    domain = _form_value("domain")
    if not domain:
        return jsonify(error="No domain provided."), 400
    enable = _form_value("enable")
    enable = enable is True or enable == "on"
    try:
        name = get_engine().set_domain_enabled(domain, enable)
    except ValueError as e:
        return jsonify(error=str(e)), 400
    logging.info(f"[Web] {'Enabled' if enable else 'Disabled'} crawling of domain {name}")
    return jsonify(domain=name, enabled=enable,
                   message=f"{'Enabled' if enable else 'Disabled'} crawling of domain {name}.")


@app.route("/stats")
def stats():
    return jsonify(get_engine().stats())
