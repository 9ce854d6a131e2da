import unittest
import tempfile
import os
import io
import sys
import struct
import random
import shutil
from contextlib import redirect_stderr, redirect_stdout

from huffman import (count_frequencies, build_tree, generate_codes, encode_bits, rebuild_tree,
                     decode_bits, weighted_path_length, Leaf, Internal, SymbolEntry, StreamDecoder,
                     MissingCodeError, SymbolTableError, MalformedStreamError)
from format import (HuffFileWriter, HuffFileReader, FormatError, HeaderError, calculate_crc32,
                    pack_code, unpack_code, HEADER_FORMAT, MAGIC, VERSION)
from codec import HuffEncoder, HuffDecoder, IntegrityError, compress_bytes, decompress_bytes, encode_stream
import main_encode
import main_decode


def count_nodes(node):
    if node is None:
        return 0, 0
    if isinstance(node, Leaf):
        return 1, 0
    left_leaves, left_internal = count_nodes(node.left)
    right_leaves, right_internal = count_nodes(node.right)
    return left_leaves + right_leaves, left_internal + right_internal + 1


def is_prefix_free(codes):
    values = list(codes.values())
    for i, a in enumerate(values):
        for j, b in enumerate(values):
            if i != j and b[:len(a)] == a:
                return False
    return True


class TestFrequencyCounter(unittest.TestCase):
    def test_counts(self):
        freqs = count_frequencies(b"abaac")
        self.assertEqual(dict(freqs), {0x61: 3, 0x62: 1, 0x63: 1})

    def test_absent_bytes_missing(self):
        freqs = count_frequencies(b"\x00\xff\x00")
        self.assertNotIn(0x01, freqs)
        self.assertEqual(len(freqs), 2)

    def test_empty(self):
        self.assertEqual(len(count_frequencies(b"")), 0)


class TestTreeBuilder(unittest.TestCase):
    def test_empty_table(self):
        self.assertIsNone(build_tree({}))

    def test_single_symbol(self):
        root = build_tree({0x41: 1000})
        self.assertIsInstance(root, Internal)
        self.assertEqual(root.left, Leaf(0x41, 1000))
        self.assertIsNone(root.right)

    def test_leaf_and_internal_counts(self):
        freqs = count_frequencies(bytes(range(256)) * 3 + b"xyz" * 10)
        leaves, internal = count_nodes(build_tree(freqs))
        self.assertEqual(leaves, 256)
        self.assertEqual(internal, 255)

    def test_root_frequency(self):
        data = b"Lorem ipsum dolor sit amet"
        root = build_tree(count_frequencies(data))
        self.assertEqual(root.freq, len(data))

    def test_ties_are_deterministic(self):
        freqs = {symbol: 1 for symbol in range(10)}
        first = generate_codes(build_tree(freqs)).codes
        second = generate_codes(build_tree(dict(reversed(list(freqs.items()))))).codes
        self.assertEqual(first, second)


class TestCodeTable(unittest.TestCase):
    def test_abaac_codes(self):
        table = generate_codes(build_tree(count_frequencies(b"abaac")))
        codes = table.codes
        self.assertLess(len(codes[0x61]), len(codes[0x62]))
        self.assertLess(len(codes[0x61]), len(codes[0x63]))
        self.assertEqual(codes, {0x61: (1,), 0x62: (0, 0), 0x63: (0, 1)})

    def test_entries_left_first(self):
        table = generate_codes(build_tree(count_frequencies(b"abaac")))
        self.assertEqual(table.entries, [
            SymbolEntry(0x62, (0, 0)),
            SymbolEntry(0x63, (0, 1)),
            SymbolEntry(0x61, (1,)),
        ])

    def test_single_symbol_gets_one_bit(self):
        table = generate_codes(build_tree({0x41: 5}))
        self.assertEqual(table.codes, {0x41: (0,)})

    def test_empty_tree(self):
        table = generate_codes(None)
        self.assertEqual(len(table), 0)
        self.assertEqual(table.entries, [])

    def test_prefix_free(self):
        random.seed(42)
        data = bytes(random.choice(b"aaaaabbbccdefghij\x00\xff") for _ in range(2000))
        codes = generate_codes(build_tree(count_frequencies(data))).codes
        self.assertTrue(is_prefix_free(codes))

    def test_minimal_weighted_length(self):
        freqs = {ord('a'): 45, ord('b'): 13, ord('c'): 12, ord('d'): 16, ord('e'): 9, ord('f'): 5}
        codes = generate_codes(build_tree(freqs)).codes
        self.assertEqual(weighted_path_length(freqs, codes), 224)

    def test_deep_tree(self):
        fib = [1, 1]
        while len(fib) < 30:
            fib.append(fib[-1] + fib[-2])
        freqs = {symbol: freq for symbol, freq in enumerate(fib)}
        codes = generate_codes(build_tree(freqs)).codes
        self.assertEqual(max(len(code) for code in codes.values()), 29)
        self.assertTrue(is_prefix_free(codes))


class TestStreamEncoder(unittest.TestCase):
    def test_abaac_bits(self):
        codes = generate_codes(build_tree(count_frequencies(b"abaac"))).codes
        self.assertEqual(list(encode_bits(b"abaac", codes)), [1, 0, 0, 1, 1, 0, 1])

    def test_missing_code(self):
        with self.assertRaises(MissingCodeError):
            list(encode_bits(b"abz", {0x61: (0,), 0x62: (1,)}))

    def test_empty_input(self):
        self.assertEqual(list(encode_bits(b"", {})), [])


class TestTreeRebuilder(unittest.TestCase):
    def test_rebuild_matches_codes(self):
        data = b"The quick brown fox jumps over the lazy dog"
        table = generate_codes(build_tree(count_frequencies(data)))
        shuffled = list(table.entries)
        random.seed(1)
        random.shuffle(shuffled)
        rebuilt = generate_codes(rebuild_tree(shuffled))
        self.assertEqual(rebuilt.codes, table.codes)

    def test_empty_table(self):
        self.assertIsNone(rebuild_tree([]))

    def test_empty_code(self):
        with self.assertRaises(SymbolTableError):
            rebuild_tree([SymbolEntry(1, ())])

    def test_duplicate_symbol(self):
        with self.assertRaises(SymbolTableError):
            rebuild_tree([SymbolEntry(1, (0,)), SymbolEntry(1, (1,))])

    def test_same_code(self):
        with self.assertRaises(SymbolTableError):
            rebuild_tree([SymbolEntry(1, (0, 1)), SymbolEntry(2, (0, 1))])

    def test_code_through_leaf(self):
        with self.assertRaises(SymbolTableError):
            rebuild_tree([SymbolEntry(1, (0,)), SymbolEntry(2, (0, 1))])

    def test_leaf_over_internal(self):
        with self.assertRaises(SymbolTableError):
            rebuild_tree([SymbolEntry(1, (0, 1)), SymbolEntry(2, (0,))])

    def test_invalid_bit(self):
        with self.assertRaises(SymbolTableError):
            rebuild_tree([SymbolEntry(1, (0, 2))])


class TestStreamDecoder(unittest.TestCase):
    def setUp(self):
        self.root = rebuild_tree([
            SymbolEntry(0x62, (0, 0)),
            SymbolEntry(0x63, (0, 1)),
            SymbolEntry(0x61, (1,)),
        ])

    def test_decode_abaac(self):
        self.assertEqual(bytes(decode_bits(self.root, [1, 0, 0, 1, 1, 0, 1])), b"abaac")

    def test_ends_mid_code(self):
        with self.assertRaises(MalformedStreamError):
            list(decode_bits(self.root, [1, 0, 0, 1, 1, 0]))

    def test_state_resets_to_root(self):
        decoder = StreamDecoder(self.root)
        self.assertIsNone(decoder.feed(0))
        self.assertFalse(decoder.at_root)
        self.assertEqual(decoder.feed(1), 0x63)
        self.assertTrue(decoder.at_root)
        decoder.finish()

    def test_missing_branch(self):
        root = rebuild_tree([SymbolEntry(0x41, (0,))])
        self.assertEqual(bytes(decode_bits(root, [0, 0, 0])), b"AAA")
        with self.assertRaises(MalformedStreamError):
            list(decode_bits(root, [0, 1]))

    def test_bits_with_empty_table(self):
        with self.assertRaises(MalformedStreamError):
            list(decode_bits(None, [0]))
        self.assertEqual(list(decode_bits(None, [])), [])


class TestFileFormat(unittest.TestCase):
    def test_code_packing(self):
        self.assertEqual(pack_code((0, 1)), b'\x40')
        self.assertEqual(pack_code((1,) * 9), b'\xff\x80')
        self.assertEqual(unpack_code(b'\xff\x80', 9), (1,) * 9)

    def test_abaac_layout(self):
        data = b"abaac"
        blob = compress_bytes(data)
        header = struct.pack(HEADER_FORMAT, MAGIC, VERSION, 5, calculate_crc32(data))
        table = b'\x02\x62\x00' + b'\x02\x63\x40' + b'\x01\x61\x80' + b'\x00'
        self.assertEqual(blob, header + table + b'\x9a\x01')

    def test_writer_reader(self):
        output = io.BytesIO()
        with HuffFileWriter(output) as writer:
            writer.write_header(3, 0x1234)
            writer.write_symbol(SymbolEntry(7, (1, 0, 1)))
            writer.finalize_symbols()
            writer.write_stream_bits([1, 0, 1, 1, 0, 1, 1, 0, 1])
        self.assertEqual(writer.bits_written, 9)

        reader = HuffFileReader(io.BytesIO(output.getvalue()))
        self.assertEqual(reader.original_size, 3)
        self.assertEqual(reader.crc32, 0x1234)
        self.assertEqual(list(reader.read_symbols()), [SymbolEntry(7, (1, 0, 1))])
        self.assertEqual(list(reader.iter_stream_bits()), [1, 0, 1, 1, 0, 1, 1, 0, 1])
        self.assertIsNone(reader.read_stream_bit())

    def test_out_of_order_writes(self):
        writer = HuffFileWriter(io.BytesIO())
        with self.assertRaises(ValueError):
            writer.write_symbol(SymbolEntry(1, (0,)))
        writer.write_header(0, 0)
        with self.assertRaises(ValueError):
            writer.write_stream_bit(1)
        with self.assertRaises(ValueError):
            writer.write_symbol(SymbolEntry(1, ()))

    def test_bad_magic(self):
        with self.assertRaises(HeaderError):
            HuffFileReader(io.BytesIO(b'NOPE' + b'\x00' * 20))

    def test_short_header(self):
        with self.assertRaises(HeaderError):
            HuffFileReader(io.BytesIO(b'HUFF'))

    def test_truncated_table(self):
        blob = compress_bytes(b"abaac")
        header_size = struct.calcsize(HEADER_FORMAT)
        reader = HuffFileReader(io.BytesIO(blob[:header_size + 4]))
        with self.assertRaises(FormatError):
            list(reader.read_symbols())

    def test_missing_trailer(self):
        blob = compress_bytes(b"")
        with self.assertRaises(FormatError):
            decompress_bytes(blob[:-1])

    def test_payload_before_table(self):
        reader = HuffFileReader(io.BytesIO(compress_bytes(b"abc")))
        with self.assertRaises(ValueError):
            reader.read_stream_bit()


class TestHuffmanRoundTrip(unittest.TestCase):
    def test_abaac(self):
        data = bytes([0x61, 0x62, 0x61, 0x61, 0x63])
        self.assertEqual(decompress_bytes(compress_bytes(data)), data)

    def test_empty(self):
        blob = compress_bytes(b"")
        self.assertEqual(len(blob), struct.calcsize(HEADER_FORMAT) + 2)
        self.assertEqual(decompress_bytes(blob), b"")

    def test_single_repeated_byte(self):
        data = b"\x41" * 1000
        self.assertEqual(decompress_bytes(compress_bytes(data)), data)

    def test_single_byte(self):
        self.assertEqual(decompress_bytes(compress_bytes(b"\x00")), b"\x00")

    def test_all_bytes(self):
        data = bytes(range(256)) * 10
        self.assertEqual(decompress_bytes(compress_bytes(data)), data)

    def test_random_data(self):
        random.seed(42)
        data = bytes(random.randint(0, 255) for _ in range(5000))
        self.assertEqual(decompress_bytes(compress_bytes(data)), data)

    def test_deterministic(self):
        data = b"Lorem ipsum dolor sit amet " * 50
        self.assertEqual(compress_bytes(data), compress_bytes(data))

    def test_compresses_text(self):
        data = b"Lorem ipsum dolor sit amet " * 200
        self.assertLess(len(compress_bytes(data)), len(data))

    def test_truncated_stream(self):
        blob = bytearray(compress_bytes(b"abaac"))
        # 2 бита дополнения вместо 1: поток обрывается внутри кода 'c'
        blob[-1] = 2
        with self.assertRaises(MalformedStreamError):
            decompress_bytes(bytes(blob))

    def test_crc_mismatch(self):
        blob = bytearray(compress_bytes(b"hello world"))
        blob[13] ^= 0xff
        with self.assertRaises(IntegrityError):
            decompress_bytes(bytes(blob))

    def test_size_mismatch(self):
        blob = bytearray(compress_bytes(b"hello world"))
        blob[5] += 1
        with self.assertRaises(IntegrityError):
            decompress_bytes(bytes(blob))

    def test_stats(self):
        stats = encode_stream(b"abaac", io.BytesIO())
        self.assertEqual(stats.original_size, 5)
        self.assertEqual(stats.symbol_count, 3)
        self.assertEqual(stats.payload_bits, 7)
        self.assertEqual(stats.compressed_size, len(compress_bytes(b"abaac")))
        self.assertAlmostEqual(stats.average_code_length, 1.4)


class TestCodec(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def path(self, name):
        return os.path.join(self.temp_dir, name)

    def test_encode_decode_file(self):
        with open(self.path("input.txt"), 'wb') as f:
            f.write(b"Hello World! " * 100)

        stats = HuffEncoder(self.path("input.txt"), self.path("input.huff")).encode()
        self.assertEqual(stats.compressed_size, os.path.getsize(self.path("input.huff")))
        self.assertLess(stats.compressed_size, stats.original_size)

        written = HuffDecoder(self.path("input.huff"), self.path("output.txt")).decode()
        self.assertEqual(written, 1300)

        with open(self.path("output.txt"), 'rb') as f:
            self.assertEqual(f.read(), b"Hello World! " * 100)

    def test_empty_file(self):
        open(self.path("empty"), 'wb').close()
        HuffEncoder(self.path("empty"), self.path("empty.huff")).encode()
        HuffDecoder(self.path("empty.huff"), self.path("empty.out")).decode()
        self.assertEqual(os.path.getsize(self.path("empty.out")), 0)

    def test_missing_input(self):
        with self.assertRaises(FileNotFoundError):
            HuffEncoder(self.path("nope"), self.path("out.huff")).encode()
        self.assertFalse(os.path.exists(self.path("out.huff")))

        with self.assertRaises(FileNotFoundError):
            HuffDecoder(self.path("nope"), self.path("out.txt")).decode()
        self.assertFalse(os.path.exists(self.path("out.txt")))

    def test_corrupt_input_removes_output(self):
        blob = bytearray(compress_bytes(b"abaac"))
        blob[-1] = 2
        with open(self.path("bad.huff"), 'wb') as f:
            f.write(blob)

        with self.assertRaises(MalformedStreamError):
            HuffDecoder(self.path("bad.huff"), self.path("out.txt")).decode()
        self.assertFalse(os.path.exists(self.path("out.txt")))


class TestCommandLine(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def test_round_trip(self):
        source = os.path.join(self.temp_dir, "file.txt")
        packed = os.path.join(self.temp_dir, "file.huff")
        restored = os.path.join(self.temp_dir, "file.out")
        with open(source, 'wb') as f:
            f.write(b"Content of file\n" * 50)

        stdout = io.StringIO()
        with redirect_stdout(stdout):
            main_encode.main([source, packed, '--stats'])
        self.assertIn("Compression ratio", stdout.getvalue())

        main_decode.main([packed, restored])
        with open(restored, 'rb') as f:
            self.assertEqual(f.read(), b"Content of file\n" * 50)

    def test_wrong_argument_count(self):
        for main in (main_encode.main, main_decode.main):
            stderr = io.StringIO()
            with redirect_stderr(stderr), self.assertRaises(SystemExit) as ctx:
                main(["only-one"])
            self.assertEqual(ctx.exception.code, 2)
            self.assertIn("usage", stderr.getvalue())

    def test_missing_file(self):
        missing = os.path.join(self.temp_dir, "missing")
        output = os.path.join(self.temp_dir, "out")
        for main in (main_encode.main, main_decode.main):
            stderr = io.StringIO()
            with redirect_stderr(stderr), self.assertRaises(SystemExit) as ctx:
                main([missing, output])
            self.assertEqual(ctx.exception.code, 1)
            self.assertIn("not found", stderr.getvalue())
        self.assertFalse(os.path.exists(output))

    def test_corrupt_file(self):
        packed = os.path.join(self.temp_dir, "bad.huff")
        with open(packed, 'wb') as f:
            f.write(b"not a huffman file at all")

        stderr = io.StringIO()
        with redirect_stderr(stderr), self.assertRaises(SystemExit) as ctx:
            main_decode.main([packed, os.path.join(self.temp_dir, "out")])
        self.assertEqual(ctx.exception.code, 1)
        self.assertIn("Error:", stderr.getvalue())


def run_tests():
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    suite.addTests(loader.loadTestsFromTestCase(TestFrequencyCounter))
    suite.addTests(loader.loadTestsFromTestCase(TestTreeBuilder))
    suite.addTests(loader.loadTestsFromTestCase(TestCodeTable))
    suite.addTests(loader.loadTestsFromTestCase(TestStreamEncoder))
    suite.addTests(loader.loadTestsFromTestCase(TestTreeRebuilder))
    suite.addTests(loader.loadTestsFromTestCase(TestStreamDecoder))
    suite.addTests(loader.loadTestsFromTestCase(TestFileFormat))
    suite.addTests(loader.loadTestsFromTestCase(TestHuffmanRoundTrip))
    suite.addTests(loader.loadTestsFromTestCase(TestCodec))
    suite.addTests(loader.loadTestsFromTestCase(TestCommandLine))

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    return 0 if result.wasSuccessful() else 1


if __name__ == '__main__':
    sys.exit(run_tests())
