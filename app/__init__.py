import threading
from flask import Flask, current_app

import config

app = Flask(__name__)
app.config.setdefault("DB_PATH", config.DB_PATH)

_engine_lock = threading.Lock()


def get_engine():
    engine = current_app.config.get("ENGINE")
    if engine is None:
        from engine import Engine
        with _engine_lock:
            engine = current_app.config.get("ENGINE")
            if engine is None:
                engine = Engine(current_app.config["DB_PATH"])
                current_app.config["ENGINE"] = engine
    return engine


@app.teardown_appcontext
def release_connection(exc):
    # Each request runs on its own thread; its connection dies with it.
    engine = current_app.config.get("ENGINE")
    if engine is not None:
        engine.context.db.release()


from app import routes  # noqa: E402,F401
