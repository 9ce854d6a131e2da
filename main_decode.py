"""
Командная строка для декодировщика Хаффмана.
"""

import argparse
import logging
import os
import sys
from codec import HuffDecoder


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog='huff-decode',
        description='Restore a file compressed by huff-encode',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main_decode.py input.huff input.txt
        """
    )
    parser.add_argument('input', help='Compressed file')
    parser.add_argument('output', help='Output file path')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if not os.path.isfile(args.input):
        print(f"Error: {args.input} not found", file=sys.stderr)
        sys.exit(1)

    decoder = HuffDecoder(args.input, args.output)

    try:
        decoder.decode()
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
