"""
Главные классы для сжатия и разжатия файлов кодом Хаффмана.
"""

import io
import os
import logging
from dataclasses import dataclass
from typing import BinaryIO, Union

from huffman import (count_frequencies, build_tree, generate_codes, encode_bits,
                     rebuild_tree, StreamDecoder, weighted_path_length)
from format import HuffFileWriter, HuffFileReader, calculate_crc32


logger = logging.getLogger(__name__)

# размер блока, которым декодер сбрасывает байты в выходной файл
OUTPUT_CHUNK_SIZE = 64 * 1024


class IntegrityError(ValueError):
    pass


@dataclass
class EncodingStats:
    original_size: int
    symbol_count: int
    payload_bits: int
    compressed_size: int

    @property
    def average_code_length(self) -> float:
        return self.payload_bits / self.original_size if self.original_size > 0 else 0.0

    @property
    def compression_ratio(self) -> float:
        return self.compressed_size / self.original_size * 100 if self.original_size > 0 else 0.0

    def print_stats(self):
        print(f"Huffman Encoding Statistics:")
        print(f"  Original size:       {self.original_size} bytes")
        print(f"  Distinct symbols:    {self.symbol_count}")
        print(f"  Payload:             {self.payload_bits} bits")
        print(f"  Avg code length:     {self.average_code_length:.3f} bits/byte")
        print(f"  Compressed size:     {self.compressed_size} bytes")
        print(f"  Compression ratio:   {self.compression_ratio:.1f}%")


def encode_stream(data: bytes, output: Union[str, BinaryIO]) -> EncodingStats:
    frequencies = count_frequencies(data)
    root = build_tree(frequencies)
    table = generate_codes(root)

    logger.debug("Code table: %d symbols, weighted length %d bits",
                 len(table), weighted_path_length(frequencies, table.codes))

    with HuffFileWriter(output) as writer:
        writer.write_header(len(data), calculate_crc32(data))
        for entry in table.entries:
            writer.write_symbol(entry)
        writer.finalize_symbols()
        writer.write_stream_bits(encode_bits(data, table.codes))

    return EncodingStats(
        original_size=len(data),
        symbol_count=len(table),
        payload_bits=writer.bits_written,
        compressed_size=writer.bytes_written
    )


def decode_stream(source: Union[str, BinaryIO], output: BinaryIO) -> int:
    with HuffFileReader(source) as reader:
        root = rebuild_tree(reader.read_symbols())
        decoder = StreamDecoder(root)

        buffer = bytearray()
        written = 0
        crc = 0

        for bit in reader.iter_stream_bits():
            symbol = decoder.feed(bit)
            if symbol is None:
                continue
            buffer.append(symbol)
            if len(buffer) >= OUTPUT_CHUNK_SIZE:
                output.write(buffer)
                crc = calculate_crc32(buffer, crc)
                written += len(buffer)
                buffer.clear()

        decoder.finish()

        if buffer:
            output.write(buffer)
            crc = calculate_crc32(buffer, crc)
            written += len(buffer)

        if written != reader.original_size:
            raise IntegrityError(f"Size mismatch: expected {reader.original_size} bytes, got {written}")
        if crc != reader.crc32:
            raise IntegrityError(f"CRC32 mismatch: expected {reader.crc32:08x}, got {crc:08x}")

    return written


class HuffEncoder:
    def __init__(self, input_path: str, output_path: str):
        self.input_path = input_path
        self.output_path = output_path

    def encode(self) -> EncodingStats:
        with open(self.input_path, 'rb') as f:
            data = f.read()

        logger.info("Encoding %s (%d bytes)", self.input_path, len(data))

        try:
            stats = encode_stream(data, self.output_path)
        except Exception:
            _remove_partial(self.output_path)
            raise

        logger.info("Wrote %s (%d bytes)", self.output_path, stats.compressed_size)
        return stats


class HuffDecoder:
    def __init__(self, input_path: str, output_path: str):
        self.input_path = input_path
        self.output_path = output_path

    def decode(self) -> int:
        if not os.path.isfile(self.input_path):
            raise FileNotFoundError(f"{self.input_path} not found")

        logger.info("Decoding %s", self.input_path)

        try:
            with open(self.output_path, 'wb') as output:
                written = decode_stream(self.input_path, output)
        except Exception:
            _remove_partial(self.output_path)
            raise

        logger.info("Wrote %s (%d bytes)", self.output_path, written)
        return written


def _remove_partial(path: str):
    if os.path.exists(path):
        logger.warning("Removing partial output %s", path)
        os.remove(path)


def compress_bytes(data: bytes) -> bytes:
    output = io.BytesIO()
    encode_stream(data, output)
    return output.getvalue()


def decompress_bytes(data: bytes) -> bytes:
    output = io.BytesIO()
    decode_stream(io.BytesIO(data), output)
    return output.getvalue()
