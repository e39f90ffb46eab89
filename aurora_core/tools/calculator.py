"""受限的四则运算求值。

先剔除数字、+ - * / ( ) . 和空白之外的所有字符，再用 ast 遍历求值，
不使用 eval，只接受数字常量、二元 + - * /、一元 + - 与括号。
"""

import ast
import operator
import re
from typing import Union

Number = Union[int, float]

_DISALLOWED = re.compile(r"[^0-9+\-*/().\s]")

_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}

_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


def sanitize(expression: str) -> str:
    return _DISALLOWED.sub("", expression or "")


def evaluate(expression: str) -> Number:
    """对已清洗的表达式求值；非法表达式抛出 ValueError。"""

    text = sanitize(expression).strip()
    if not text:
        raise ValueError("empty expression")
    try:
        tree = ast.parse(text, mode="eval")
    except SyntaxError as exc:
        raise ValueError(str(exc)) from exc
    return _eval_node(tree.body)


def _eval_node(node: ast.AST) -> Number:
    if isinstance(node, ast.Constant) and type(node.value) in (int, float):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BIN_OPS:
        left = _eval_node(node.left)
        right = _eval_node(node.right)
        try:
            return _BIN_OPS[type(node.op)](left, right)
        except ZeroDivisionError as exc:
            raise ValueError("division by zero") from exc
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand))
    # ** 和 // 在清洗后仍可能出现，这里一并拒绝
    raise ValueError(f"unsupported syntax: {type(node).__name__}")


def format_number(value: Number) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
