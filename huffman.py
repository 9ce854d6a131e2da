"""
Реализует статическое кодирование Хаффмана для байтового потока.
Частоты -> дерево -> таблица кодов -> поток битов, и обратно:
таблица символов -> восстановленное дерево -> исходные байты.
"""

import heapq
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union


logger = logging.getLogger(__name__)

Code = Tuple[int, ...]

# 256 символов дают дерево глубиной не больше 255
MAX_CODE_LENGTH = 255


class MissingCodeError(RuntimeError):
    """Байт без кода в таблице: ошибка связывания, а не входных данных."""


class SymbolTableError(ValueError):
    pass


class MalformedStreamError(ValueError):
    pass


@dataclass
class Leaf:
    symbol: int
    freq: int = 0


@dataclass
class Internal:
    freq: int = 0
    left: Optional['Node'] = None
    right: Optional['Node'] = None


Node = Union[Leaf, Internal]


@dataclass
class SymbolEntry:
    symbol: int
    code: Code


@dataclass
class CodeTable:
    codes: Dict[int, Code] = field(default_factory=dict)
    entries: List[SymbolEntry] = field(default_factory=list)

    def __len__(self):
        return len(self.codes)


def count_frequencies(data: Iterable[int]) -> Counter:
    return Counter(data)


def build_tree(frequencies: Dict[int, int]) -> Optional[Internal]:
    """
    Строит дерево Хаффмана по таблице частот.

    Очередь хранит кортежи (freq, seq, node); seq растет с каждой вставкой,
    поэтому при равных частотах первым извлекается узел, вставленный раньше.
    Первый извлеченный узел становится левым потомком, второй правым.

    Пустая таблица дает None. Единственный символ подвешивается левым
    потомком к корню, чтобы получить однобитовый код (0,).
    """
    if not frequencies:
        return None

    heap: List[Tuple[int, int, Node]] = []
    seq = 0
    for symbol in sorted(frequencies):
        heap.append((frequencies[symbol], seq, Leaf(symbol, frequencies[symbol])))
        seq += 1
    heapq.heapify(heap)

    if len(heap) == 1:
        freq, _, leaf = heap[0]
        return Internal(freq=freq, left=leaf)

    while len(heap) > 1:
        left_freq, _, left = heapq.heappop(heap)
        right_freq, _, right = heapq.heappop(heap)

        parent = Internal(freq=left_freq + right_freq, left=left, right=right)
        heapq.heappush(heap, (parent.freq, seq, parent))
        seq += 1

    return heap[0][2]


def generate_codes(root: Optional[Node]) -> CodeTable:
    table = CodeTable()
    if root is None:
        return table

    # явный стек: каждый кадр несет свой неизменяемый путь
    stack: List[Tuple[Node, Code]] = [(root, ())]
    while stack:
        node, path = stack.pop()

        if isinstance(node, Leaf):
            table.codes[node.symbol] = path
            table.entries.append(SymbolEntry(node.symbol, path))
            continue

        # правый кладется первым, чтобы левое поддерево обходилось раньше
        if node.right is not None:
            stack.append((node.right, path + (1,)))
        if node.left is not None:
            stack.append((node.left, path + (0,)))

    return table


def encode_bits(data: Iterable[int], codes: Dict[int, Code]) -> Iterator[int]:
    for byte in data:
        try:
            code = codes[byte]
        except KeyError:
            raise MissingCodeError(f"No code for byte 0x{byte:02x}") from None
        yield from code


def rebuild_tree(entries: Iterable[SymbolEntry]) -> Optional[Internal]:
    """
    Восстанавливает дерево по сохраненной таблице символов.

    Частоты не сохраняются, поэтому совпадает только топология: каждый
    символ оказывается на том же пути, что и при кодировании.
    """
    root: Optional[Internal] = None
    seen = set()

    for entry in entries:
        code = entry.code
        if not code:
            raise SymbolTableError(f"Empty code for symbol 0x{entry.symbol:02x}")
        if len(code) > MAX_CODE_LENGTH:
            raise SymbolTableError(f"Code too long for symbol 0x{entry.symbol:02x}: {len(code)} bits")
        if entry.symbol in seen:
            raise SymbolTableError(f"Duplicate symbol 0x{entry.symbol:02x}")
        seen.add(entry.symbol)

        if root is None:
            root = Internal()

        node = root
        for depth, bit in enumerate(code):
            if bit not in (0, 1):
                raise SymbolTableError(f"Invalid bit {bit!r} in code for symbol 0x{entry.symbol:02x}")

            attr = 'left' if bit == 0 else 'right'
            child = getattr(node, attr)

            if depth == len(code) - 1:
                if child is not None:
                    raise SymbolTableError(f"Code for symbol 0x{entry.symbol:02x} collides with another code")
                setattr(node, attr, Leaf(entry.symbol))
            else:
                if child is None:
                    child = Internal()
                    setattr(node, attr, child)
                elif isinstance(child, Leaf):
                    raise SymbolTableError(f"Code for symbol 0x{entry.symbol:02x} extends the code of 0x{child.symbol:02x}")
                node = child

    logger.debug("Rebuilt tree with %d leaves", len(seen))
    return root


class StreamDecoder:
    def __init__(self, root: Optional[Internal]):
        self.root = root
        self.node: Optional[Node] = root
        self.bits_consumed = 0

    def feed(self, bit: int) -> Optional[int]:
        """Продвигается на один бит; возвращает символ, если дошли до листа."""
        if self.node is None:
            raise MalformedStreamError("Payload present but symbol table is empty")

        child = self.node.left if bit == 0 else self.node.right
        self.bits_consumed += 1

        if child is None:
            raise MalformedStreamError(f"Bit {self.bits_consumed} does not match any code")

        if isinstance(child, Leaf):
            self.node = self.root
            return child.symbol

        self.node = child
        return None

    @property
    def at_root(self) -> bool:
        return self.node is self.root

    def finish(self):
        if not self.at_root:
            raise MalformedStreamError(
                f"Stream ended in the middle of a code after {self.bits_consumed} bits"
            )


def decode_bits(root: Optional[Internal], bits: Iterable[int]) -> Iterator[int]:
    decoder = StreamDecoder(root)
    for bit in bits:
        symbol = decoder.feed(bit)
        if symbol is not None:
            yield symbol
    decoder.finish()


def weighted_path_length(frequencies: Dict[int, int], codes: Dict[int, Code]) -> int:
    return sum(freq * len(codes[symbol]) for symbol, freq in frequencies.items())
