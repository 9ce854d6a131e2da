"""
Командная строка для кодировщика Хаффмана.
"""

import argparse
import logging
import os
import sys
from codec import HuffEncoder


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog='huff-encode',
        description='Compress a file with static Huffman coding',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main_encode.py input.txt input.huff
  python main_encode.py --stats input.txt input.huff
        """
    )
    parser.add_argument('input', help='File to compress')
    parser.add_argument('output', help='Compressed file path')
    parser.add_argument('--stats', action='store_true', help='Print encoding statistics')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if not os.path.isfile(args.input):
        print(f"Error: {args.input} not found", file=sys.stderr)
        sys.exit(1)

    encoder = HuffEncoder(args.input, args.output)

    try:
        stats = encoder.encode()
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.stats:
        stats.print_stats()


if __name__ == '__main__':
    main()
