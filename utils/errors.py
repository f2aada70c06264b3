from typing import Optional

_REGISTER_FN = {
    "parameters": "register_parameter()",
    "buffers": "register_buffer()",
    "children": "register_module()",
}


class CloneError(RuntimeError):
    """Base class for failures while deep cloning a module tree."""


class StructuralMismatch(CloneError):
    """The module rebuilt by ``reset()`` does not have the shape of the original.

    `expected` and `actual` are member counts, or tensor shapes when
    `reason` is ``"shape"``. `name` is set for the per-member reasons
    ``"missing"``, ``"none"`` and ``"shape"``.
    """

    def __init__(
        self,
        category: str,
        expected,
        actual,
        module_type: Optional[type] = None,
        name: Optional[str] = None,
        reason: str = "count",
    ):
        self.category = category
        self.expected = expected
        self.actual = actual
        self.module_type = module_type
        self.name = name
        self.reason = reason
        self.missing = name if reason == "missing" else None

        owner = module_type.__name__ if module_type is not None else "module"
        if reason == "missing":
            detail = (
                f"The cloned {owner} has no entry named '{name}' among its "
                f"{category} after calling reset()."
            )
        elif reason == "none":
            detail = (
                f"'{name}' among the {category} of the cloned {owner} is None in "
                "one module but not the other after calling reset()."
            )
        elif reason == "shape":
            detail = (
                f"'{name}' among the {category} of the cloned {owner} has shape "
                f"{tuple(actual)} after calling reset(), the original has "
                f"{tuple(expected)}."
            )
        else:
            detail = (
                f"The cloned {owner} does not have the same number of {category} "
                f"as the original module after calling reset() "
                f"(expected {expected}, got {actual})."
            )
        super().__init__(
            f"{detail} Are you sure you called {_REGISTER_FN[category]} "
            "inside reset() and not the constructor?"
        )


class TypeMismatch(CloneError):
    """A child clone is not of the type of the slot it is merged into."""

    def __init__(self, expected: type, actual: type):
        self.expected = expected
        self.actual = actual
        super().__init__(
            "Attempted to clone submodule, but it is of a different type than "
            f"the submodule it was to be cloned into ({actual.__name__} is not "
            f"a {expected.__name__})"
        )
