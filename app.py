"""Run the bridge with Flask's built-in server."""
from __future__ import annotations

import os

from config import config
from mpbridge import create_app
from mpbridge.app_factory import URL_PREFIX

config_name = os.environ.get("APP_ENV") or os.environ.get("FLASK_ENV", "development")
if config_name not in config:
    config_name = "default"
app = create_app(config_name)


if __name__ == "__main__":
    port = app.config["PORT"]
    app.logger.info("WeChat bridge listening on http://localhost:%s", port)
    app.logger.info("Callback URL: http://localhost:%s%s/wechat", port, URL_PREFIX)
    app.run(host=app.config["HOST"], port=port, debug=app.config["DEBUG"])
