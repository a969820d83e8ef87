"""
Error taxonomy
"""


class DundergradError(Exception): ...


class ShapeMismatch(DundergradError, ValueError):
    """Row/column counts disagree for an element-wise op, or the data is not a rectangular matrix"""


class DimensionMismatch(DundergradError, ValueError):
    """Inner dimensions disagree for a matrix product"""


class CompilationError(DundergradError):
    """Emission was skipped for at least one compiled file"""
