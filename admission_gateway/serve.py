import logging
import os
import sys

from .webhook import create_app

LOG = logging.getLogger(__name__)


def tls_paths(config):
    cert_path = os.path.join(config["TLS_DIR"], config["TLS_CERT_FILE"])
    key_path = os.path.join(config["TLS_DIR"], config["TLS_KEY_FILE"])
    return cert_path, key_path


def main():
    logging.basicConfig(level=logging.INFO)
    app = create_app()

    cert_path, key_path = tls_paths(app.config)
    for path in (cert_path, key_path):
        if not os.path.isfile(path):
            LOG.error("Missing TLS file %s", path)
            sys.exit(1)

    LOG.info(
        "Starting admission webhook on %s:%s%s",
        app.config["BIND_ADDRESS"],
        app.config["PORT"],
        app.config["WEBHOOK_PATH"],
    )
    app.run(
        host=app.config["BIND_ADDRESS"],
        port=app.config["PORT"],
        ssl_context=(cert_path, key_path),
        threaded=True,
    )


if __name__ == "__main__":
    main()
