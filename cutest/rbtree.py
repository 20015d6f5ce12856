"""Red-black tree keyed by a user supplied three-way compare function.

One implementation serves both the case registry and the custom type
registry. Nodes carry parent links so that in-order traversal needs neither
recursion nor an auxiliary stack.
"""

from typing import Any, Callable, Iterator, Optional, Tuple

RED = 0
BLACK = 1


class RBNode:
    __slots__ = ("key", "value", "parent", "left", "right", "color")

    def __init__(self, key, value, parent=None):
        self.key = key
        self.value = value
        self.parent = parent
        self.left = None
        self.right = None
        self.color = RED


class RBTree:
    def __init__(self, cmp: Callable[[Any, Any], int]):
        self._cmp = cmp
        self.root: Optional[RBNode] = None
        self._size = 0

    def __len__(self):
        return self._size

    def __contains__(self, key):
        return self._find_node(key) is not None

    def __iter__(self) -> Iterator[Any]:
        for _, value in self.items():
            yield value

    def insert(self, key, value) -> bool:
        """Insert ``value`` under ``key``.

        Returns False and leaves the tree untouched when ``key`` is already
        present.
        """
        parent = None
        node = self.root
        ret = 0
        while node is not None:
            parent = node
            ret = self._cmp(key, node.key)
            if ret < 0:
                node = node.left
            elif ret > 0:
                node = node.right
            else:
                return False

        new_node = RBNode(key, value, parent)
        if parent is None:
            self.root = new_node
        elif ret < 0:
            parent.left = new_node
        else:
            parent.right = new_node

        self._insert_fixup(new_node)
        self._size += 1
        return True

    def find(self, key):
        node = self._find_node(key)
        return None if node is None else node.value

    def first(self) -> Optional[RBNode]:
        node = self.root
        if node is None:
            return None
        while node.left is not None:
            node = node.left
        return node

    @staticmethod
    def next(node: RBNode) -> Optional[RBNode]:
        if node.right is not None:
            node = node.right
            while node.left is not None:
                node = node.left
            return node
        parent = node.parent
        while parent is not None and node is parent.right:
            node = parent
            parent = node.parent
        return parent

    def items(self) -> Iterator[Tuple[Any, Any]]:
        node = self.first()
        while node is not None:
            yield node.key, node.value
            node = self.next(node)

    def _find_node(self, key) -> Optional[RBNode]:
        node = self.root
        while node is not None:
            ret = self._cmp(key, node.key)
            if ret < 0:
                node = node.left
            elif ret > 0:
                node = node.right
            else:
                return node
        return None

    def _rotate_left(self, node):
        pivot = node.right
        node.right = pivot.left
        if pivot.left is not None:
            pivot.left.parent = node
        self._replace_child(node, pivot)
        pivot.left = node
        node.parent = pivot

    def _rotate_right(self, node):
        pivot = node.left
        node.left = pivot.right
        if pivot.right is not None:
            pivot.right.parent = node
        self._replace_child(node, pivot)
        pivot.right = node
        node.parent = pivot

    def _replace_child(self, old, new):
        parent = old.parent
        new.parent = parent
        if parent is None:
            self.root = new
        elif old is parent.left:
            parent.left = new
        else:
            parent.right = new

    def _insert_fixup(self, node):
        while node.parent is not None and node.parent.color == RED:
            parent = node.parent
            # a red node is never the root, so the grandparent exists
            grandparent = parent.parent
            if parent is grandparent.left:
                uncle = grandparent.right
                if uncle is not None and uncle.color == RED:
                    parent.color = BLACK
                    uncle.color = BLACK
                    grandparent.color = RED
                    node = grandparent
                    continue
                if node is parent.right:
                    self._rotate_left(parent)
                    node, parent = parent, node
                parent.color = BLACK
                grandparent.color = RED
                self._rotate_right(grandparent)
            else:
                uncle = grandparent.left
                if uncle is not None and uncle.color == RED:
                    parent.color = BLACK
                    uncle.color = BLACK
                    grandparent.color = RED
                    node = grandparent
                    continue
                if node is parent.left:
                    self._rotate_right(parent)
                    node, parent = parent, node
                parent.color = BLACK
                grandparent.color = RED
                self._rotate_left(grandparent)
        self.root.color = BLACK


def bytewise_compare(a: bytes, b: bytes) -> int:
    """strcmp() semantics over already encoded keys."""
    if a == b:
        return 0
    return -1 if a < b else 1
