import logging
from datetime import date, datetime

from flask import Flask
from flask.json.provider import DefaultJSONProvider

from config import Config
from errors import PosError
from firestore_db import FirestoreEventLog
from logging_config import configure_logging
from realtime import ChangeFeed
from routes_api import api
from routes_web import web
from services import build_services
from sql_db import init_db, make_engine, make_session_factory
from storage import Store

logger = logging.getLogger(__name__)


class IsoJSONProvider(DefaultJSONProvider):
    """Dates and timestamps as ISO 8601 instead of HTTP-date strings."""

    @staticmethod
    def default(o):
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        return DefaultJSONProvider.default(o)


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)
    app.json = IsoJSONProvider(app)

    configure_logging(app.config["LOG_LEVEL"], app.config["LOG_JSON"])

    engine = make_engine(app.config["SQLALCHEMY_DATABASE_URI"])
    # create tables for demo
    init_db(engine)
    store = Store(make_session_factory(engine), ChangeFeed())

    event_log = None
    if app.config["FIRESTORE_EVENTS"]:
        event_log = FirestoreEventLog(database_id=app.config["FIRESTORE_DB_ID"])

    app.extensions["pos"] = build_services(
        store, app.config, event_log=event_log, clock=app.config.get("CLOCK")
    )

    @app.errorhandler(PosError)
    def handle_pos_error(e: PosError):
        # web views catch their own errors and flash them; this covers the JSON API
        return {"error": e.message}, e.status_code

    app.register_blueprint(web)
    app.register_blueprint(api)
    logger.info("App ready on %s", engine.url.render_as_string(hide_password=True))
    return app


if __name__ == "__main__":
    create_app().run(debug=True)
