"""
signalpost relay entrypoint.

Reads configuration from the environment, builds the Flask app (edge hooks,
HTTP routes, signaling socket), starts the background threads (liveness
sweeper, rate-limit window reset), and serves with werkzeug's threaded
server. Failing to bind the listen port is the only fatal error.
"""
import logging
import sys

from flask import Flask
from werkzeug.serving import make_server

from signalpost import edge, log_buffer, state
from signalpost.models import RelaySettings
from signalpost.routes import docs as docs_bp
from signalpost.routes import logs as logs_bp
from signalpost.routes import peers as peers_bp
from signalpost.routes import status as status_bp
from signalpost.routes import ws
from signalpost.sweeper import LivenessSweeper

log = logging.getLogger("signalpost.server")

MAX_BODY_BYTES = 10 * 1024


def create_app(settings: RelaySettings | None = None) -> Flask:
    """Build the relay app around fresh shared state. Background threads are not started."""
    state.init(settings or RelaySettings())

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = MAX_BODY_BYTES
    app.config["SOCK_SERVER_OPTIONS"] = {"ping_interval": 25,
                                        "max_message_size": state.settings.max_frame_bytes}

    edge.install(app)
    app.register_blueprint(status_bp.bp)
    app.register_blueprint(peers_bp.bp, url_prefix=state.settings.peer_path)
    app.register_blueprint(logs_bp.bp)
    app.register_blueprint(docs_bp.bp)
    ws.bind(app, state.settings.peer_path)
    return app


def start_background():
    """Start the liveness sweeper and the rate-limit reset thread."""
    s = state.settings
    state.sweeper = LivenessSweeper(state.registry, threshold=s.inactivity_timeout,
                                    interval=s.sweep_interval)
    state.sweeper.start()
    state.rate_limiter.start()


def stop_background():
    if state.sweeper is not None:
        state.sweeper.stop()
    state.rate_limiter.stop()


def main():
    try:
        settings = RelaySettings.from_env()
    except ValueError as exc:
        logging.basicConfig(level=logging.INFO, format=log_buffer.LOG_FORMAT)
        log.error("Invalid configuration: %s", exc)
        raise SystemExit(2)

    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO),
                        format=log_buffer.LOG_FORMAT)
    log_buffer.install_log_handler()

    app = create_app(settings)
    try:
        srv = make_server(settings.host, settings.port, app, threaded=True)
    except (OSError, SystemExit) as exc:
        log.error("Could not bind %s:%d: %s", settings.host, settings.port, exc)
        raise SystemExit(1)

    start_background()
    log.info("Relay listening on http://%s:%d (signaling at %s, discovery %s)",
             settings.host, settings.port, settings.peer_path,
             "on" if settings.allow_discovery else "off")
    log.info("Limits: %d req/%gs per address, %gs inactivity timeout, %gs sweep interval",
             settings.rate_limit_max, settings.rate_limit_window,
             settings.inactivity_timeout, settings.sweep_interval)
    try:
        srv.serve_forever()
    except KeyboardInterrupt:
        log.info("Shutting down")
    finally:
        stop_background()
        srv.server_close()


if __name__ == "__main__":
    sys.exit(main())
