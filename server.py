from __future__ import annotations

from app import create_app

# gunicorn entry: `gunicorn -c gunicorn.conf.py server:app`
app = create_app()


if __name__ == "__main__":
    cfg = app.config["CFG"]
    app.run(host=cfg.HOST, port=cfg.PORT)
