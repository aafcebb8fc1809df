"""Name to id lookups over a P4Info message."""

from google.protobuf import text_format
from p4.config.v1 import p4info_pb2

from .errors import P4RuntimeClientError


def parse_p4info(data: bytes) -> p4info_pb2.P4Info:
    """
    Parse a P4Info message in protobuf text format.

    Args:
        data: Text-format P4Info, possibly empty

    Returns:
        Parsed P4Info

    Raises:
        P4RuntimeClientError: If the text cannot be parsed
    """
    p4info = p4info_pb2.P4Info()
    try:
        text_format.Parse(data.decode("utf-8"), p4info)
    except (UnicodeDecodeError, text_format.ParseError) as e:
        raise P4RuntimeClientError(f"Invalid P4Info: {e}") from e
    return p4info


def _matches(preamble, name: str) -> bool:
    return name in (preamble.name, preamble.alias)


class P4InfoIndex:
    """Resolves entity names used by the controller to P4Info ids."""

    def __init__(self, p4info: p4info_pb2.P4Info):
        self.p4info = p4info

    def _find(self, entities, kind: str, name: str):
        for entity in entities:
            if _matches(entity.preamble, name):
                return entity
        raise P4RuntimeClientError(f"Unknown {kind} '{name}' in P4Info")

    def table(self, name: str) -> p4info_pb2.Table:
        return self._find(self.p4info.tables, "table", name)

    def action(self, name: str) -> p4info_pb2.Action:
        return self._find(self.p4info.actions, "action", name)

    def digest_id(self, name: str) -> int:
        return self._find(self.p4info.digests, "digest", name).preamble.id

    def counter_id(self, name: str) -> int:
        return self._find(self.p4info.counters, "counter", name).preamble.id

    def match_field_ids(self, table_name: str) -> list[int]:
        """Match field ids of a table, in declaration order."""
        return [field.id for field in self.table(table_name).match_fields]

    def action_param_ids(self, action_name: str) -> list[int]:
        """Parameter ids of an action, in declaration order."""
        return [param.id for param in self.action(action_name).params]
