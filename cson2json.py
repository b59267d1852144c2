"""
cson2json - relaxed, indentation-aware notation to JSON converter

Turns a human-friendly JSON superset (comments, unquoted keys and values,
indentation-implied objects, triple-quoted multi-line strings) into JSON text
in one forward scan. Nothing is validated: malformed input gives best-effort
output, and json.loads on the result is the authoritative check.

Usage:
    import cson2json

    cson2json.to_json(b'''
    server:
      host: localhost
      port: 8080  # Default port
    ''')
    # b'{"server":{"host":"localhost","port":8080}}'

    # Decode straight to Python objects
    data = cson2json.loads("debug: true")

    # Load from file
    with open('config.cson', 'rb') as f:
        data = cson2json.load(f)

From the shell:
    cat config.cson | cson2json
    cson2json config.cson
"""

import argparse
import io
import json
import logging
import math
import sys
from collections.abc import MutableMapping, MutableSequence
from typing import Any, BinaryIO, Optional, Tuple, Union

__version__ = '1.0.0'

__all__ = ['to_json', 'load', 'loads', 'decode_into', 'Reader', 'DecodeError', 'InputError', 'main']

logger = logging.getLogger(__name__)

# ==========================================
# Constants
# ==========================================

KEYWORDS = frozenset([b'true', b'false', b'null'])

UNSET = None  # current_indent after a bare word, until the next newline

_BLANK = b' \t\x0b\x0c'
_NEWLINE = b'\r\n'
_PUNCTUATION = b':{[}],'
_QUOTES = b'\'"'
_NUMERIC_LEAD = b'+-0123456789'
_DELIMITERS = b':}],\n'
_SPACE = ord(' ')
_BOM = b'\xef\xbb\xbf'

# ==========================================
# Errors
# ==========================================

class DecodeError(ValueError):
    def __init__(self, message: str, line: int = 0, col: int = 0):
        super().__init__(f"Decode error at {line}:{col}: {message}")
        self.line = line
        self.col = col

class InputError(Exception):
    """No input could be obtained for the command line tool."""

# ==========================================
# Sub-scanners
# ==========================================

def _scan_comment(s: bytes, pos: int) -> int:
    """Return the index just past the comment starting at s[pos].

    ``###`` followed by anything but another ``#`` opens a block comment
    closed by the next ``###``. Every other comment runs to end of line.
    """
    if s.startswith(b'###', pos) and s[pos + 3:pos + 4] not in (b'', b'#'):
        end = s.find(b'###', pos + 4)
        return len(s) if end == -1 else end + 3
    end = s.find(b'\n', pos)
    return len(s) if end == -1 else end

def _dedent(content: bytes) -> bytes:
    head, sep, rest = content.partition(b'\n')
    if sep and not head.strip(b' \t'):
        content = rest
    rest, sep, tail = content.rpartition(b'\n')
    if sep and not tail.strip(b' \t'):
        content = rest

    lines = content.split(b'\n')
    margin = len(content)
    for line in lines:
        for i, byte in enumerate(line[:margin]):
            if byte != _SPACE:
                margin = i
                break
    return b'\\n'.join(line[margin:] for line in lines)

def _scan_string(s: bytes, pos: int) -> Tuple[bytes, int]:
    """Scan the quoted string at s[pos]; return its JSON-ready content and the index past it."""
    quote = s[pos:pos + 1]
    triple = quote * 3

    if s.startswith(triple, pos):
        start = pos + 3
        end = s.find(triple, start)
        if end == -1:
            return _dedent(s[start:]), len(s)
        return _dedent(s[start:end]), end + 3

    j = pos + 1
    while j < len(s):
        ch = s[j:j + 1]
        if ch == quote:
            break
        if ch == b'\\' and j + 1 < len(s):
            j += 1
        j += 1
    content = s[pos + 1:j].replace(b'\n', b'\\n')
    return content, min(j + 1, len(s))

def _scan_word(s: bytes, pos: int) -> Tuple[bytes, int]:
    """Scan a bare word; return it trimmed and the index just past it."""
    end = pos
    while end < len(s):
        ch = s[end:end + 1]
        if ch in _DELIMITERS:
            break
        # inline comment only after a blank, so issue#42 stays one word
        if ch == b'#' and end > pos and s[end - 1:end] in b' \t':
            break
        end += 1
    word = s[pos:end].rstrip()
    return word, pos + len(word)

def _is_number(word: bytes) -> bool:
    if b'_' in word:
        return False
    try:
        value = float(word)
    except ValueError:
        return False
    return math.isfinite(value)

# ==========================================
# Converter
# ==========================================

class _Converter:
    def __init__(self, source: bytes):
        self.source = source
        self.length = len(source)
        self.pos = len(_BOM) if source.startswith(_BOM) else 0
        self.out = bytearray()

        self.nest = 0
        self.current_indent: Optional[int] = 0
        self.last_indent = 0
        self.pending_comma = False
        self.explicit_depth = 0
        self.wrapped: Optional[bool] = None

    def convert(self) -> bytes:
        while self.pos < self.length:
            ch = self.source[self.pos:self.pos + 1]

            if ch in _BLANK:
                self.pos += 1
                if self.current_indent is not UNSET:
                    self.current_indent += 1
                continue

            if ch in _NEWLINE:
                self.pos += 1
                self.current_indent = 0
                continue

            if ch == b'#':
                self.pos = _scan_comment(self.source, self.pos)
                continue

            self.open_document(ch)
            if ch in _PUNCTUATION:
                self.punctuation(ch)
            elif ch in _QUOTES:
                content, self.pos = _scan_string(self.source, self.pos)
                self.write_value(content, quote=True)
            elif ch in _NUMERIC_LEAD:
                word, self.pos = _scan_word(self.source, self.pos)
                self.write_value(word, quote=not _is_number(word))
            else:
                self.bare_word()

        return self.close_document()

    # Writer

    def open_document(self, ch: bytes):
        if self.wrapped is None:
            self.wrapped = ch not in b'{['
            if self.wrapped:
                self.out += b'{'

    def close_document(self) -> bytes:
        if self.wrapped is None:
            self.out += b'{'
        self.out += b'}' * self.nest
        if self.wrapped is not False:
            self.out += b'}'
        return bytes(self.out)

    def write_comma(self):
        if self.pending_comma:
            self.out += b','
            self.pending_comma = False

    def write_value(self, value: bytes, quote: bool):
        self.write_comma()
        if quote:
            self.out += b'"' + value + b'"'
        else:
            self.out += value
        self.pending_comma = True

    def punctuation(self, ch: bytes):
        self.pos += 1
        if ch == b':':
            self.out += ch
            self.pending_comma = False
        elif ch in b'{[':
            self.write_comma()
            self.out += ch
            self.explicit_depth += 1
        elif ch in b'}]':
            self.out += ch
            self.pending_comma = True
            self.explicit_depth = max(0, self.explicit_depth - 1)
        else:
            # the comma itself is only written if another value follows
            self.pending_comma = True

    # Structure

    def bare_word(self):
        if self.current_indent is not UNSET and not self.explicit_depth:
            self.infer_structure(self.current_indent)
        self.current_indent = UNSET

        word, self.pos = _scan_word(self.source, self.pos)
        self.write_value(word, quote=word not in KEYWORDS)

    def infer_structure(self, indent: int):
        if indent < self.last_indent:
            # Closes a single level, however far the line dedents.
            if self.nest:
                self.out += b'}'
                self.pending_comma = True
                self.nest -= 1
            self.last_indent = indent
        elif indent > self.last_indent:
            self.write_comma()
            self.out += b'{'
            self.nest += 1
            self.last_indent = indent

# ==========================================
# Public API
# ==========================================

def to_json(source: Union[bytes, str]) -> Union[bytes, str]:
    """Convert relaxed notation to JSON text.

    Never fails: bytes in gives bytes out, str in gives str out.
    """
    if isinstance(source, str):
        return to_json(source.encode('utf-8')).decode('utf-8')

    converter = _Converter(bytes(source))
    out = converter.convert()
    logger.debug("converted %d bytes to %d bytes (%d implicit objects closed at end of input)",
                 converter.length, len(out), converter.nest)
    return out

def loads(source: Union[bytes, str], **kwargs) -> Any:
    """Convert and decode; keyword arguments are passed on to json.loads."""
    try:
        return json.loads(to_json(source), **kwargs)
    except json.JSONDecodeError as exc:
        raise DecodeError(exc.msg, exc.lineno, exc.colno) from exc

def load(fp, **kwargs) -> Any:
    """Convert and decode the contents of a file-like object."""
    return loads(fp.read(), **kwargs)

def decode_into(source: Union[bytes, str], target):
    """Decode into an existing container or object and return it.

    Mappings are updated, sequences are replaced in place, and any other
    object has the attributes it already defines assigned. Keys with no
    matching attribute are ignored.
    """
    value = loads(source)

    if isinstance(target, MutableMapping):
        if not isinstance(value, dict):
            raise DecodeError(f"cannot decode {type(value).__name__} into {type(target).__name__}")
        target.update(value)
    elif isinstance(target, MutableSequence):
        if not isinstance(value, list):
            raise DecodeError(f"cannot decode {type(value).__name__} into {type(target).__name__}")
        target[:] = value
    else:
        if not isinstance(value, dict):
            raise DecodeError(f"cannot decode {type(value).__name__} into {type(target).__name__}")
        for key, item in value.items():
            if hasattr(target, key):
                setattr(target, key, item)
    return target

class Reader(io.RawIOBase):
    """Readable stream of the JSON converted from an upstream stream.

    The upstream is read in full on the first read and converted once.
    """

    def __init__(self, source: BinaryIO):
        super().__init__()
        self._source = source
        self._converted: Optional[io.BytesIO] = None

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if self._converted is None:
            data = self._source.read()
            if isinstance(data, str):
                data = data.encode('utf-8')
            self._converted = io.BytesIO(to_json(data))
        return self._converted.readinto(buffer)

# ==========================================
# Command line
# ==========================================

def read_pipe_or_file(path: Optional[str], stdin=None) -> bytes:
    """Read piped stdin if there is any, else the named file."""
    stdin = sys.stdin if stdin is None else stdin
    if stdin is not None and not stdin.isatty():
        data = getattr(stdin, 'buffer', stdin).read()
        return data.encode('utf-8') if isinstance(data, str) else data
    if not path:
        raise InputError("no piped data and no file provided")
    with open(path, 'rb') as f:
        return f.read()

def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog='cson2json',
        description='Convert relaxed, indentation-aware notation to JSON.',
    )
    parser.add_argument('file', nargs='?', help='input file, used when nothing is piped on stdin')
    parser.add_argument('-v', '--verbose', action='store_true', help='log conversion details to stderr')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    try:
        data = read_pipe_or_file(args.file)
    except (InputError, OSError) as exc:
        print(f"error: {exc}")
        return 1

    stdout = getattr(sys.stdout, 'buffer', sys.stdout)
    stdout.write(to_json(data))
    stdout.flush()
    return 0

if __name__ == '__main__':
    sys.exit(main())
