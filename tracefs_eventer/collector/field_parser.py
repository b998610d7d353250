# tracefs_eventer/collector/field_parser.py - Delimited field tokenizer
"""
Tokenizer for the semi-structured text emitted by tracefs.

Fields are sliced out of a byte buffer in place: a FieldCursor holds the
buffer and the current read position, and every field returned advances the
position past the field and its separator. Consuming a line is therefore a
left-to-right walk over a single buffer.
"""

from abc import ABC, abstractmethod
from typing import Dict, Tuple, Union

from tracefs_eventer.errors import EmptyField, UnexpectedEndOfInput


COLON_SPACE = b': '
SPACE = b' '
EQUALS = b'='


class FieldCursor:
    """
    Mutable read position over an immutable byte buffer.
    """

    __slots__ = ('data', 'pos')

    def __init__(self, data: Union[bytes, bytearray, memoryview], pos: int = 0):
        self.data = bytes(data) if not isinstance(data, bytes) else data
        self.pos = pos

    def __len__(self) -> int:
        return len(self.data) - self.pos

    def __bool__(self) -> bool:
        return self.pos < len(self.data)

    def find(self, sep: bytes) -> int:
        """Absolute index of the next occurrence of sep, or -1"""
        return self.data.find(sep, self.pos)

    def take(self, end: int, skip: int = 0) -> bytes:
        """Return bytes up to absolute index end and move past end + skip"""
        token = self.data[self.pos:end]
        self.pos = min(end + skip, len(self.data))
        return token

    def remaining(self) -> bytes:
        """Bytes not yet consumed"""
        return self.data[self.pos:]


def decode(token: bytes) -> str:
    """Decode a field, replacing any bytes that are not valid UTF-8"""
    return token.decode('utf-8', 'replace')


class FieldParser(ABC):
    """
    Splits a cursor into its component fields.
    """

    @abstractmethod
    def next_field(self, cursor: FieldCursor, sep: bytes,
                   expect_more_fields: bool) -> Tuple[str, bool]:
        """
        Return the next field and whether it was the last one in the cursor.
        """

    @abstractmethod
    def get_tagged_fields(self, cursor: FieldCursor) -> Dict[str, str]:
        """
        Return all remaining `key=value` fields in the cursor.
        """


class SlicingFieldParser(FieldParser):
    """
    Extracts fields by slicing the cursor's buffer at separator boundaries.
    """

    def next_field(self, cursor: FieldCursor, sep: bytes,
                   expect_more_fields: bool) -> Tuple[str, bool]:
        """
        Return the field preceding the next occurrence of sep.

        If sep is not found and expect_more_fields is False, the rest of the
        cursor is returned as the final field and consumed.

        Args:
            cursor: Cursor to read from, advanced past the field and separator
            sep: Separator that ends the field
            expect_more_fields: Whether the field must be followed by sep

        Returns:
            Tuple of (field, end_of_fields)

        Raises:
            UnexpectedEndOfInput: The cursor is empty, or sep is absent and
                more fields were expected
            EmptyField: The field before sep is zero bytes long
        """
        if not cursor:
            raise UnexpectedEndOfInput()

        idx = cursor.find(sep)
        if idx == -1:
            if expect_more_fields:
                raise UnexpectedEndOfInput()

            # Last field runs to the end of the buffer
            return decode(cursor.take(len(cursor.data))), True

        field = cursor.take(idx, len(sep))
        if not field:
            raise EmptyField()

        return decode(field), False

    def get_tagged_fields(self, cursor: FieldCursor) -> Dict[str, str]:
        """
        Parse a run of space-separated `key=value` fields.

        The cursor is expected to contain nothing but tagged fields.

        Args:
            cursor: Cursor positioned at the first tag

        Returns:
            Dictionary of tag to value

        Raises:
            UnexpectedEndOfInput: A tag is not followed by '='
            EmptyField: A tag or value is empty
        """
        fields = {}
        while True:
            # A tag must always be followed by a value
            tag, _ = self.next_field(cursor, EQUALS, True)
            value, last = self.next_field(cursor, SPACE, False)

            fields[tag] = value

            if last:
                break

        return fields
