import logging
from sqlalchemy import event
from sqlalchemy.orm.attributes import NO_VALUE

from .. import models

logger = logging.getLogger(__name__)

_registered = False


def _listener_factory(model_name: str):
    """Return a SQLAlchemy attribute listener that logs status changes."""

    def _status_change(target, value, oldvalue, initiator):  # noqa: ANN001
        if oldvalue is NO_VALUE or oldvalue is None or oldvalue == value:
            return value
        entity_id = getattr(target, "id", "unknown")
        logger.info(
            "%s id=%s status changed from %s to %s",
            model_name,
            entity_id,
            getattr(oldvalue, "value", oldvalue),
            getattr(value, "value", value),
        )
        return value

    return _status_change


def register_status_listeners() -> None:
    """Attach listeners for all models with a ``status`` attribute.

    Bulk ``UPDATE`` statements bypass attribute events; the services log
    those transitions themselves.
    """
    global _registered
    if _registered:
        return
    for model in (
        models.TouristRequest,
        models.RequestSelection,
        models.Student,
    ):
        event.listen(
            model.status,  # type: ignore[arg-type]
            "set",
            _listener_factory(model.__name__),
            retval=False,
            propagate=True,
        )
    _registered = True
