import logging


class ContextLogger(logging.LoggerAdapter):
    """A LoggerAdapter that attaches key/value context to every record.

    Context fields become attributes of the emitted ``LogRecord`` and are
    appended to the message as ``key=value`` pairs. Fields passed through
    ``extra`` on an individual call are merged with the bound context.
    """

    def __init__(self, logger, extra=None):
        super().__init__(logger, dict(extra or {}))

    def bind(self, **fields):
        return ContextLogger(self.logger, {**self.extra, **fields})

    def process(self, msg, kwargs):
        fields = {**self.extra, **kwargs.get("extra", {})}
        kwargs["extra"] = fields
        if fields:
            msg = "{} {}".format(
                msg, " ".join(f"{key}={val}" for key, val in fields.items())
            )
        return msg, kwargs
