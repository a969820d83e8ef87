"""
Static type binder

Walks a module in source order and records, for every expression whose type can be
decided from declarations alone, the `StaticType` it evaluates to. Sources of types:

* classes declared in the module (their methods form the capability set),
* registry types brought in with `import` / `from ... import`,
* constructor calls, annotated assignments, annotated parameters and `self`,
* return annotations of functions and declared return types of methods,
* binary expressions whose operator maps onto a declared method.

Anything else is untyped; rebinding a name to an untyped value clears it.
"""

from __future__ import annotations

import ast
import dataclasses
from typing import Iterable, Literal

from dundergrad.capabilities import (
    OperatorMatch,
    StaticType,
    TypeDescription,
    TypeRegistry,
    default_registry,
    match_operator,
)


@dataclasses.dataclass(frozen=True, slots=True)
class ClassRef:
    description: TypeDescription
    constructor: str

    def instance(self) -> StaticType:
        return StaticType(self.description, self.constructor)


@dataclasses.dataclass(frozen=True, slots=True)
class FunctionRef:
    returns: StaticType | None


@dataclasses.dataclass(frozen=True, slots=True)
class ModuleRef:
    path: str


Binding = StaticType | ClassRef | FunctionRef | ModuleRef | None


@dataclasses.dataclass(slots=True)
class _Scope:
    kind: Literal["module", "class", "function"]
    names: dict[str, Binding] = dataclasses.field(default_factory=dict)


class TypeBindings:
    """Read-only view of the checker's results, keyed by expression node"""

    def __init__(self) -> None:
        self._types: dict[ast.expr, StaticType] = {}

    def __len__(self) -> int:
        return len(self._types)

    def __contains__(self, node: object) -> bool:
        return node in self._types

    def record(self, node: ast.expr, static_type: StaticType | None) -> None:
        if static_type is not None:
            self._types[node] = static_type

    def type_of(self, node: ast.expr) -> StaticType | None:
        return self._types.get(node)

    @staticmethod
    def is_numeric_literal(node: ast.expr) -> bool:
        return isinstance(node, ast.Constant) and type(node.value) in (int, float)

    def match_operator(self, node: ast.BinOp) -> OperatorMatch | None:
        return match_operator(
            node.op,
            self.type_of(node.left),
            self.type_of(node.right),
            left_is_literal=self.is_numeric_literal(node.left),
            right_is_literal=self.is_numeric_literal(node.right),
        )


class TypeChecker(ast.NodeVisitor):
    def __init__(self, registry: TypeRegistry | None = None) -> None:
        self.registry = default_registry() if registry is None else registry
        self.bindings = TypeBindings()
        self._scopes: list[_Scope] = [_Scope("module")]
        self._classes: dict[str, ClassRef] = {}
        self._class_stack: list[ClassRef] = []

    def check(self, tree: ast.AST) -> TypeBindings:
        self._declare_classes(tree)
        self.visit(tree)
        return self.bindings

    def visit(self, node: ast.AST) -> None:
        super().visit(node)
        if isinstance(node, ast.expr):
            self.bindings.record(node, self._infer(node))

    ### statements ###
    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            if alias.asname is None:
                self._bind(top := alias.name.split(".")[0], ModuleRef(top))
            else:
                self._bind(alias.asname, ModuleRef(alias.name))

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        for alias in node.names:
            if alias.name == "*":
                continue
            local = alias.asname or alias.name
            description = self.registry.get(alias.name)
            self._bind(local, None if description is None else ClassRef(description, local))

    def visit_Assign(self, node: ast.Assign) -> None:
        self.visit(node.value)
        for target in node.targets:
            self.visit(target)
            self._bind_target(target, self.bindings.type_of(node.value))

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        if node.value is not None:
            self.visit(node.value)
        self.visit(node.target)
        declared = self._annotation_type(node.annotation)
        value_type = None if node.value is None else self.bindings.type_of(node.value)
        self._bind_target(node.target, declared or value_type)

    def visit_AugAssign(self, node: ast.AugAssign) -> None:
        self.visit(node.value)
        self.visit(node.target)
        if isinstance(node.target, ast.Name):
            current = self._lookup(node.target.id)
            current = current if isinstance(current, StaticType) else None
            match_ = match_operator(
                node.op,
                current,
                self.bindings.type_of(node.value),
                right_is_literal=TypeBindings.is_numeric_literal(node.value),
            )
            self._bind(node.target.id, self._result_type(match_))

    def visit_For(self, node: ast.For | ast.AsyncFor) -> None:
        self.visit(node.iter)
        self.visit(node.target)
        self._bind_target(node.target, None)
        self._visit_all(node.body)
        self._visit_all(node.orelse)

    visit_AsyncFor = visit_For

    def visit_With(self, node: ast.With | ast.AsyncWith) -> None:
        for item in node.items:
            self.visit(item.context_expr)
            if item.optional_vars is not None:
                self.visit(item.optional_vars)
                self._bind_target(item.optional_vars, None)
        self._visit_all(node.body)

    visit_AsyncWith = visit_With

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.type is not None:
            self.visit(node.type)
        if node.name is not None:
            self._bind(node.name, None)
        self._visit_all(node.body)

    def visit_FunctionDef(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        self._visit_all(node.decorator_list)
        self._visit_all(node.args.defaults)
        self._visit_all(d for d in node.args.kw_defaults if d is not None)
        self._bind(node.name, FunctionRef(self._annotation_type(node.returns)))
        self._scopes.append(_Scope("function"))
        try:
            for arg, arg_type in self._argument_types(node):
                self._bind(arg.arg, arg_type)
            self._visit_all(node.body)
        finally:
            self._scopes.pop()

    visit_AsyncFunctionDef = visit_FunctionDef

    def visit_Lambda(self, node: ast.Lambda) -> None:
        self._visit_all(node.args.defaults)
        self._scopes.append(_Scope("function"))
        try:
            for arg in _all_args(node.args):
                self._bind(arg.arg, None)
            self.visit(node.body)
        finally:
            self._scopes.pop()

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        self._visit_all(node.decorator_list)
        self._visit_all(node.bases)
        class_ref = self._classes.get(node.name)
        self._bind(node.name, class_ref)
        self._scopes.append(_Scope("class"))
        if class_ref is not None:
            self._class_stack.append(class_ref)
        try:
            self._visit_all(node.body)
        finally:
            self._scopes.pop()
            if class_ref is not None:
                self._class_stack.pop()

    def _visit_comprehension(self, node: ast.ListComp | ast.SetComp | ast.GeneratorExp | ast.DictComp) -> None:
        self._scopes.append(_Scope("function"))
        try:
            for generator in node.generators:
                self.visit(generator.iter)
                self._bind_target(generator.target, None)
                self._visit_all(generator.ifs)
            if isinstance(node, ast.DictComp):
                self.visit(node.key)
                self.visit(node.value)
            else:
                self.visit(node.elt)
        finally:
            self._scopes.pop()

    visit_ListComp = visit_SetComp = visit_GeneratorExp = visit_DictComp = _visit_comprehension

    ### expressions ###
    def _infer(self, node: ast.expr) -> StaticType | None:
        match node:
            case ast.Name(id=name, ctx=ast.Load()):
                return binding if isinstance(binding := self._lookup(name), StaticType) else None
            case ast.Call(func=func):
                return self._call_type(func)
            case ast.BinOp():
                return self._result_type(self.bindings.match_operator(node))
            case ast.NamedExpr(target=ast.Name(id=name), value=value):
                self._bind(name, value_type := self.bindings.type_of(value))
                return value_type
            case _:
                return None

    def _call_type(self, func: ast.expr) -> StaticType | None:
        if (class_ref := self._class_of(func)) is not None:
            return class_ref.instance()
        if isinstance(func, ast.Attribute) and (owner := self.bindings.type_of(func.value)) is not None:
            return self._returned_type(owner, func.attr)
        if isinstance(func, ast.Attribute) and (owner_class := self._class_of(func.value)) is not None:
            return self._returned_type(owner_class.instance(), func.attr)
        if isinstance(func, ast.Name) and isinstance(binding := self._lookup(func.id), FunctionRef):
            return binding.returns
        return None

    def _result_type(self, match_: OperatorMatch | None) -> StaticType | None:
        if match_ is None:
            return None
        return self._returned_type(match_.receiver, match_.method)

    def _returned_type(self, owner: StaticType, method: str) -> StaticType | None:
        if (name := owner.description.returns(method)) == owner.name:
            return owner  # NOTE: keeps the constructor path the owner was reached through
        return self._resolve_type_name(name)

    def _class_of(self, node: ast.expr) -> ClassRef | None:
        match node:
            case ast.Name(id=name):
                return binding if isinstance(binding := self._lookup(name), ClassRef) else None
            case ast.Attribute(value=value, attr=attr) if self._is_module(value):
                description = self.registry.get(attr)
                return None if description is None else ClassRef(description, ast.unparse(node))
            case _:
                return None

    def _is_module(self, node: ast.expr) -> bool:
        match node:
            case ast.Name(id=name):
                return isinstance(self._lookup(name), ModuleRef)
            case ast.Attribute(value=value):
                return self._is_module(value)
            case _:
                return False

    def _annotation_type(self, annotation: ast.expr | None) -> StaticType | None:
        match annotation:
            case ast.Name(id="Self") | ast.Attribute(attr="Self") if self._class_stack:
                return self._class_stack[-1].instance()
            case ast.Name() | ast.Attribute():
                return None if (class_ref := self._class_of(annotation)) is None else class_ref.instance()
            case ast.Constant(value=str(text)):
                try:
                    parsed = ast.parse(text, mode="eval").body
                except SyntaxError:
                    return None
                return self._annotation_type(parsed)
            case _:
                return None

    def _resolve_type_name(self, name: str | None) -> StaticType | None:
        """Type named by a return annotation, reachable through the closest binding of its class"""
        if name is None:
            return None
        for scope in reversed(self._scopes):
            for binding in scope.names.values():
                if isinstance(binding, ClassRef) and binding.description.name == name:
                    return binding.instance()
        if (class_ref := self._classes.get(name)) is not None:
            return class_ref.instance()
        if (description := self.registry.get(name)) is not None:
            return StaticType(description, name)
        return None

    ### declarations ###
    def _declare_classes(self, tree: ast.AST) -> None:
        for node in ast.walk(tree):
            if isinstance(node, ast.ClassDef):
                bases = (self._base_description(base) for base in node.bases)
                description = describe_class(node, [b for b in bases if b is not None])
                self._classes[node.name] = ClassRef(description, node.name)

    def _base_description(self, base: ast.expr) -> TypeDescription | None:
        name = base.attr if isinstance(base, ast.Attribute) else getattr(base, "id", None)
        if name is None:
            return None
        if (class_ref := self._classes.get(name)) is not None:
            return class_ref.description
        return self.registry.get(name)

    def _argument_types(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> Iterable[tuple[ast.arg, StaticType | None]]:
        args = _all_args(node.args)
        decorators = {getattr(d, "id", getattr(d, "attr", None)) for d in node.decorator_list}
        is_method = self._scopes[-2].kind == "class" and "staticmethod" not in decorators
        for i, arg in enumerate(args):
            if i == 0 and is_method and node.args.posonlyargs + node.args.args:
                yield arg, (None if "classmethod" in decorators or not self._class_stack else self._class_stack[-1].instance())
            else:
                yield arg, self._annotation_type(arg.annotation)

    ### scopes ###
    def _bind(self, name: str, binding: Binding) -> None:
        self._scopes[-1].names[name] = binding

    def _bind_target(self, target: ast.expr, static_type: StaticType | None) -> None:
        match target:
            case ast.Name(id=name):
                self._bind(name, static_type)
            case ast.Tuple(elts=elts) | ast.List(elts=elts):
                for elt in elts:
                    self._bind_target(elt, None)
            case ast.Starred(value=value):
                self._bind_target(value, None)

    def _lookup(self, name: str) -> Binding:
        for depth, scope in enumerate(reversed(self._scopes)):
            if scope.kind == "class" and depth > 0:
                continue  # NOTE: class bodies are not visible from nested scopes
            if name in scope.names:
                return scope.names[name]
        return None

    def _visit_all(self, nodes: Iterable[ast.AST]) -> None:
        for node in nodes:
            self.visit(node)


def describe_class(node: ast.ClassDef, bases: Iterable[TypeDescription] = ()) -> TypeDescription:
    """Capability set of a class declaration: its methods and class level names, bases first"""
    methods: dict[str, str | None] = {}
    for base in bases:
        methods.update(base.methods)
    for stmt in node.body:
        match stmt:
            case ast.FunctionDef(name=name, returns=returns) | ast.AsyncFunctionDef(name=name, returns=returns):
                methods[name] = _annotation_name(returns, node.name)
            case ast.Assign(targets=targets, value=value):
                aliased = methods.get(value.id) if isinstance(value, ast.Name) else None
                methods.update((t.id, aliased) for t in targets if isinstance(t, ast.Name))
    return TypeDescription(node.name, methods)


def _annotation_name(annotation: ast.expr | None, class_name: str) -> str | None:
    match annotation:
        case ast.Name(id="Self") | ast.Attribute(attr="Self"):
            return class_name
        case ast.Name(id=name) | ast.Attribute(attr=name):
            return name
        case ast.Constant(value=str(text)):
            return _annotation_name(ast.Name(id=text.strip().split(".")[-1]), class_name)
        case _:
            return None


def _all_args(args: ast.arguments) -> list[ast.arg]:
    extra = [a for a in (args.vararg, args.kwarg) if a is not None]
    return [*args.posonlyargs, *args.args, *args.kwonlyargs, *extra]
