import logging
import time
import uuid

from flask import Flask, Response, current_app, g, request
from werkzeug import exceptions as http_exceptions
from werkzeug.exceptions import HTTPException

from .codec import ReviewCodec
from .engine import AdmissionEngine
from .exc import ApplicationError, MethodNotAllowed
from .gate import exclude_namespaces
from .logs import ContextLogger
from .policies import ResourceLimitsPolicy

LOG = logging.getLogger(__name__)

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE"]


class DEFAULTS:
    WEBHOOK_PATH = "/validate"
    POLICY = ResourceLimitsPolicy
    NAMESPACE_ALLOWED = None
    EXCLUDED_NAMESPACES = "kube-system,kube-public"
    LOG_LEVEL = "INFO"
    TLS_DIR = "/run/secrets/tls"
    TLS_CERT_FILE = "tls.crt"
    TLS_KEY_FILE = "tls.key"
    BIND_ADDRESS = "0.0.0.0"
    PORT = 8443


def text_response(message, status, headers=None):
    return message, status, {"content-type": "text/plain", **(headers or {})}


def handle_review():
    """Answer one admission review.

    All methods are routed here so that method validation, and the log line
    for a rejected method, go through the same path as every other request.
    """
    logger = ContextLogger(LOG, {"request_id": uuid.uuid4()})
    start_time = g.start_time

    try:
        result = current_app.engine.handle(
            request.method,
            request.headers.get("Content-Type"),
            request.get_data,
            logger,
        )
    except ApplicationError as err:
        if err.admission_id is not None:
            logger = logger.bind(admission_id=err.admission_id)
        level = logging.ERROR if err.status_code >= 500 else logging.WARNING
        logger.log(
            level,
            "error handling request",
            extra={
                "error": err,
                "result": "error",
                "duration": time.monotonic() - start_time,
            },
        )
        headers = {"Allow": "POST"} if isinstance(err, MethodNotAllowed) else None
        return text_response(str(err), err.status_code, headers)
    except HTTPException as err:
        logger.warning(
            "error handling request",
            extra={
                "error": err,
                "result": "error",
                "duration": time.monotonic() - start_time,
            },
        )
        return text_response(err.description or err.name, err.code)
    except Exception as err:
        logger.exception(
            "error handling request",
            extra={
                "error": err,
                "result": "error",
                "duration": time.monotonic() - start_time,
            },
        )
        return text_response(str(err), 500)

    logger.bind(admission_id=result.uid).info(
        "handled request",
        extra={
            "result": "success",
            "allowed": result.allowed,
            "duration": time.monotonic() - start_time,
        },
    )
    return Response(result.body, status=200, mimetype="application/json")


def mark_start():
    g.start_time = time.monotonic()


def handle_method_not_allowed(err):
    """Log methods the URL map rejects before they reach a view."""
    logger = ContextLogger(LOG, {"request_id": uuid.uuid4()})
    logger.warning(
        "error handling request",
        extra={
            "error": f"invalid method {request.method}",
            "result": "error",
            "duration": time.monotonic() - g.start_time,
        },
    )
    allow = ", ".join(sorted(err.valid_methods or []))
    return text_response(f"invalid method {request.method}", 405, {"Allow": allow})


def health():
    return text_response("OK", 200)


def parse_namespaces(val):
    if isinstance(val, str):
        return [ns.strip() for ns in val.split(",") if ns.strip()]
    return list(val)


def create_app(**config) -> Flask:
    """Use an application factory [1] to create the Flask app.

    The codec, namespace predicate and decision function are constructed once
    here and shared read-only by every request.

    [1]: https://flask.palletsprojects.com/en/3.0.x/patterns/appfactories/
    """

    app = Flask(__name__)
    app.config.from_object(DEFAULTS)
    app.config.from_prefixed_env("ADMISSION")
    if config:
        app.config.update(config)

    logging.getLogger("admission_gateway").setLevel(app.config["LOG_LEVEL"])

    namespace_allowed = app.config["NAMESPACE_ALLOWED"]
    if namespace_allowed is None:
        namespace_allowed = exclude_namespaces(
            parse_namespaces(app.config["EXCLUDED_NAMESPACES"])
        )

    codec = ReviewCodec()
    app.engine = AdmissionEngine(
        codec,
        app.config["POLICY"](codec),
        namespace_allowed=namespace_allowed,
    )

    app.before_request(mark_start)
    app.errorhandler(http_exceptions.MethodNotAllowed)(handle_method_not_allowed)
    app.add_url_rule("/healthz", view_func=health)
    app.add_url_rule(
        app.config["WEBHOOK_PATH"],
        view_func=handle_review,
        methods=ALL_METHODS,
        provide_automatic_options=False,
    )

    return app
