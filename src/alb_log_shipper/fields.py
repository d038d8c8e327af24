# src/alb_log_shipper/fields.py

"""
The fixed Application Load Balancer access-log schema and the user-facing
column selection that is resolved against it.

See https://docs.aws.amazon.com/elasticloadbalancing/latest/application/load-balancer-access-logs.html
for the column layout.
"""

from .exceptions import InvalidFieldIndexError, InvalidFieldSelectionError

FIELD_NAMES: tuple[str, ...] = (
    "type",
    "time",
    "elb",
    "client:port",
    "target:port",
    "request_processing_time",
    "target_processing_time",
    "response_processing_time",
    "elb_status_code",
    "target_status_code",
    "received_bytes",
    "sent_bytes",
    "request",
    "user_agent",
    "ssl_cipher",  # https listener
    "ssl_protocol",  # https listener
    "target_group_arn",
    "trace_id",
    "domain_name",  # https listener
    "chosen_cert_arn",  # https listener
    "matched_rule_priority",
    "request_creation_time",
    "actions_executed",
    "redirect_url",
    "error_reason",
    "target:port_list",
    "target_status_code_list",
    "classification",
    "classification_reason",
    "conn_trace_id",  # https listener
)

FIELD_COUNT = len(FIELD_NAMES)

# Position of the request timestamp within a record.
TIME_FIELD_INDEX = FIELD_NAMES.index("time")

_KNOWN_FIELDS = frozenset(FIELD_NAMES)


class FieldSelection:
    """The set of columns that end up in each shipped log event."""

    __slots__ = ("_included",)

    def __init__(self, names: frozenset[str]):
        self._included = names

    @classmethod
    def resolve(cls, field_list: str) -> "FieldSelection":
        """
        Builds a selection from a comma separated list of column names.

        A blank list selects every column. The first unknown name raises
        InvalidFieldSelectionError and nothing is selected.
        """
        if not field_list.strip():
            return cls(_KNOWN_FIELDS)

        selected: set[str] = set()
        for token in field_list.split(","):
            name = token.strip()
            if name not in _KNOWN_FIELDS:
                raise InvalidFieldSelectionError(name)
            selected.add(name)
        return cls(frozenset(selected))

    @property
    def names(self) -> list[str]:
        """Selected column names in schema order."""
        return [name for name in FIELD_NAMES if name in self._included]

    def include_field(self, index: int) -> bool:
        if index < 0 or index >= FIELD_COUNT:
            return False
        return FIELD_NAMES[index] in self._included

    def name_for_index(self, index: int) -> str:
        if index < 0 or index >= FIELD_COUNT:
            raise InvalidFieldIndexError(index)
        return FIELD_NAMES[index]

    def __contains__(self, name: object) -> bool:
        return name in self._included

    def __repr__(self) -> str:
        return f"FieldSelection({self.names!r})"
