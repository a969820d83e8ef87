import os

from dundergrad import callbacks, logger
from dundergrad.compiler import CompilerOptions, compile_files, compile_source, execute
from dundergrad.config import Configuration
from dundergrad.errors import CompilationError, DimensionMismatch, DundergradError, ShapeMismatch
from dundergrad.lowering import lower, lower_source
from dundergrad.runtime import Engine, NumPyEngine
from dundergrad.tensors import Tensor

### Default configuration ###
Configuration(engine=NumPyEngine(), reset_gradients=False)

if os.getenv(logger.LOG_LEVEL_ENV_SETTER):
    Configuration(logger.TensorLogger())


__all__ = [
    "callbacks",
    "CompilationError",
    "CompilerOptions",
    "compile_files",
    "compile_source",
    "Configuration",
    "DimensionMismatch",
    "DundergradError",
    "Engine",
    "execute",
    "lower",
    "lower_source",
    "NumPyEngine",
    "ShapeMismatch",
    "Tensor",
]
