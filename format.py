"""
Определяет структуру сжатого файла и методы чтения/записи.

Заголовок, таблица символов с терминатором, упакованный поток битов
и завершающий байт с числом битов дополнения.
"""

import struct
import zlib
import logging
from typing import BinaryIO, Iterator, Optional, Union

from huffman import SymbolEntry, MAX_CODE_LENGTH


logger = logging.getLogger(__name__)

MAGIC = b'HUFF'
VERSION = 1

HEADER_FORMAT = '<4sBQI'
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)


class FormatError(ValueError):
    pass


class HeaderError(FormatError):
    pass


def calculate_crc32(data: bytes, value: int = 0) -> int:
    return zlib.crc32(data, value) & 0xffffffff


def pack_code(code) -> bytes:
    output = bytearray((len(code) + 7) // 8)
    for i, bit in enumerate(code):
        if bit:
            output[i // 8] |= 0x80 >> (i % 8)
    return bytes(output)


def unpack_code(data: bytes, length: int) -> tuple:
    return tuple((data[i // 8] >> (7 - i % 8)) & 1 for i in range(length))


def _open(target: Union[str, BinaryIO], mode: str):
    if isinstance(target, (str, bytes)) or hasattr(target, '__fspath__'):
        return open(target, mode), True
    return target, False


class HuffFileWriter:
    def __init__(self, target: Union[str, BinaryIO]):
        self.stream, self._owns_stream = _open(target, 'wb')
        self.rack = 0
        self.mask = 0x80
        self.bits_written = 0
        self.bytes_written = 0
        self.symbols_written = 0
        self._header_written = False
        self._symbols_finalized = False
        self._closed = False

    def _write(self, data: bytes):
        self.stream.write(data)
        self.bytes_written += len(data)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def write_header(self, original_size: int, crc32: int):
        if self._header_written:
            raise ValueError("Header already written")
        self._write(struct.pack(HEADER_FORMAT, MAGIC, VERSION, original_size, crc32))
        self._header_written = True

    def write_symbol(self, entry: SymbolEntry):
        if not self._header_written:
            raise ValueError("Header must be written before the symbol table")
        if self._symbols_finalized:
            raise ValueError("Symbol table already finalized")

        length = len(entry.code)
        if not 1 <= length <= MAX_CODE_LENGTH:
            raise ValueError(f"Code length {length} out of range for symbol 0x{entry.symbol:02x}")

        self._write(struct.pack('<BB', length, entry.symbol))
        self._write(pack_code(entry.code))
        self.symbols_written += 1

    def finalize_symbols(self):
        if not self._header_written:
            raise ValueError("Header must be written before the symbol table")
        if self._symbols_finalized:
            raise ValueError("Symbol table already finalized")
        self._write(struct.pack('<B', 0))
        self._symbols_finalized = True

    def write_stream_bit(self, bit: int):
        if not self._symbols_finalized:
            raise ValueError("Symbol table must be finalized before the payload")

        if bit:
            self.rack |= self.mask
        self.mask >>= 1
        self.bits_written += 1

        if self.mask == 0:
            self._write(struct.pack('B', self.rack))
            self.rack = 0
            self.mask = 0x80

    def write_stream_bits(self, bits):
        for bit in bits:
            self.write_stream_bit(bit)

    def close(self):
        if self._closed:
            return
        self._closed = True

        try:
            if self._symbols_finalized:
                padding = (8 - self.bits_written % 8) % 8
                if padding:
                    self._write(struct.pack('B', self.rack))
                self._write(struct.pack('B', padding))
                logger.debug("Payload: %d bits, %d padding bits", self.bits_written, padding)
            self.stream.flush()
        finally:
            if self._owns_stream:
                self.stream.close()


class HuffFileReader:
    def __init__(self, source: Union[str, BinaryIO]):
        self.stream, self._owns_stream = _open(source, 'rb')
        self._table_done = False
        self._payload: Optional[bytes] = None
        self._total_bits = 0
        self._position = 0

        try:
            self._read_header()
        except Exception:
            self.close()
            raise

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _read_header(self):
        data = self.stream.read(HEADER_SIZE)
        if len(data) < HEADER_SIZE:
            raise HeaderError("File too small for header")

        magic, version, original_size, crc32 = struct.unpack(HEADER_FORMAT, data)
        if magic != MAGIC:
            raise HeaderError("Invalid magic")
        if version != VERSION:
            raise HeaderError(f"Unsupported version: {version}")

        self.original_size = original_size
        self.crc32 = crc32

    def _read_exact(self, size: int, what: str) -> bytes:
        data = self.stream.read(size)
        if len(data) < size:
            raise FormatError(f"Truncated symbol table: cannot read {what}")
        return data

    def read_symbol(self) -> Optional[SymbolEntry]:
        if self._table_done:
            return None

        length = self._read_exact(1, "code length")[0]
        if length == 0:
            self._table_done = True
            return None

        symbol = self._read_exact(1, "symbol")[0]
        code_bytes = self._read_exact((length + 7) // 8, "code bits")
        return SymbolEntry(symbol, unpack_code(code_bytes, length))

    def read_symbols(self) -> Iterator[SymbolEntry]:
        entry = self.read_symbol()
        while entry is not None:
            yield entry
            entry = self.read_symbol()

    def _load_payload(self):
        if not self._table_done:
            raise ValueError("Symbol table must be read before the payload")

        data = self.stream.read()
        if not data:
            raise FormatError("Missing payload trailer")

        padding = data[-1]
        payload = data[:-1]
        if padding > 7 or (padding and not payload):
            raise FormatError(f"Invalid padding: {padding}")

        self._payload = payload
        self._total_bits = len(payload) * 8 - padding

    def read_stream_bit(self) -> Optional[int]:
        if self._payload is None:
            self._load_payload()

        if self._position >= self._total_bits:
            return None

        byte = self._payload[self._position // 8]
        bit = (byte >> (7 - self._position % 8)) & 1
        self._position += 1
        return bit

    def iter_stream_bits(self) -> Iterator[int]:
        bit = self.read_stream_bit()
        while bit is not None:
            yield bit
            bit = self.read_stream_bit()

    def close(self):
        if self._owns_stream and not self.stream.closed:
            self.stream.close()
