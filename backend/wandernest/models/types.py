from sqlalchemy import Enum as SAEnum


class CaseInsensitiveEnum(SAEnum):
    """Enum column type that accepts values in any letter case.

    Values are folded to the case the enum itself declares, so
    ``"accepted"``, ``"ACCEPTED"`` and ``SelectionStatus.ACCEPTED`` all bind to
    the same stored string, and legacy rows written in the other case still
    load.
    """

    def __init__(self, enum_cls, **kwargs):
        self._enum_cls = enum_cls
        self._enum_kwargs = kwargs.copy()
        self._upper = all(m.value == m.value.upper() for m in enum_cls)
        kwargs.setdefault("values_callable", lambda enum: [e.value for e in enum])
        super().__init__(enum_cls, **kwargs)

    def _fold(self, value: str) -> str:
        return value.upper() if self._upper else value.lower()

    def adapt(self, impltype, **kw):
        params = {**self._enum_kwargs, **kw}
        return CaseInsensitiveEnum(self._enum_cls, **params)

    def bind_processor(self, dialect):
        parent = super().bind_processor(dialect)

        def process(value):
            if value is None:
                return None
            if isinstance(value, str) and not isinstance(value, self._enum_cls):
                value = self._fold(value)
            else:
                value = value.value
            if parent:
                return parent(value)
            return value

        return process

    def result_processor(self, dialect, coltype):
        parent = super().result_processor(dialect, coltype)

        def process(value):
            if value is None:
                return None
            if isinstance(value, str):
                value = self._fold(value)
            if parent:
                return parent(value)
            return value

        return process
