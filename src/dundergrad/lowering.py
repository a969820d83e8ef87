"""
Operator lowering pass

Rewrites binary operator expressions into explicit method calls when the static type of
the left operand declares the matching method:

    a + b   ->  a.__add__(b)
    a - b   ->  a.__sub__(b)
    a * b   ->  a.__mul__(b)

A numeric literal multiplied with an operand whose type declares `__mul__` is wrapped into
a 1x1 tensor on its own side first:

    a * 2   ->  a.__mul__(Tensor([[2]]))
    2 * a   ->  Tensor([[2]]).__mul__(a)

Every other expression is left as it is. Running the pass twice is a no-op.
"""

from __future__ import annotations

import ast
import copy
import logging

from dundergrad.capabilities import OperatorMatch, TypeRegistry
from dundergrad.typecheck import TypeBindings, TypeChecker

logger = logging.getLogger(__name__)


class OperatorLowering(ast.NodeTransformer):
    def __init__(self, bindings: TypeBindings) -> None:
        self.bindings = bindings
        self.rewrites = 0

    def visit_BinOp(self, node: ast.BinOp) -> ast.expr:
        match_ = self.bindings.match_operator(node)  # NOTE: decided on the operands before they are lowered
        node = self.generic_visit(node)  # type: ignore[assignment]
        if match_ is None:
            logger.debug("line %s: kept native %s", getattr(node, "lineno", "?"), type(node.op).__name__)
            return node
        self.rewrites += 1
        call = build_method_call(node.left, node.right, match_)
        logger.debug("line %s: lowered to %s", getattr(node, "lineno", "?"), ast.unparse(call))
        return ast.copy_location(call, node)


def build_method_call(left: ast.expr, right: ast.expr, match_: OperatorMatch) -> ast.Call:
    match match_.wrap:
        case "left":
            left = wrap_scalar(left, match_.receiver.constructor)
        case "right":
            right = wrap_scalar(right, match_.receiver.constructor)
    receiver = ast.Attribute(value=left, attr=match_.method, ctx=ast.Load())
    return ast.Call(func=receiver, args=[right], keywords=[])


def wrap_scalar(literal: ast.expr, constructor: str) -> ast.Call:
    """`2` -> `<constructor>([[2]])`"""
    matrix = ast.List(elts=[ast.List(elts=[literal], ctx=ast.Load())], ctx=ast.Load())
    return ast.copy_location(ast.Call(func=dotted_name(constructor), args=[matrix], keywords=[]), literal)


def dotted_name(path: str) -> ast.expr:
    head, *attrs = path.split(".")
    expr: ast.expr = ast.Name(id=head, ctx=ast.Load())
    for attr in attrs:
        expr = ast.Attribute(value=expr, attr=attr, ctx=ast.Load())
    return expr


def lower(tree: ast.Module, registry: TypeRegistry | None = None) -> ast.Module:
    """Lowered copy of `tree`; the tree passed in is left untouched"""
    tree = copy.deepcopy(tree)
    bindings = TypeChecker(registry).check(tree)
    lowering = OperatorLowering(bindings)
    lowered = ast.fix_missing_locations(lowering.visit(tree))
    logger.debug("lowered %d operator expression(s)", lowering.rewrites)
    return lowered


def lower_source(source: str, filename: str = "<unknown>", registry: TypeRegistry | None = None) -> str:
    return ast.unparse(lower(ast.parse(source, filename=filename), registry))
