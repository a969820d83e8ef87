import logging
import os

from dundergrad import autograd, callbacks

LOG_LEVEL_ENV_SETTER = "DUNDERGRAD_LOGLEVEL"


def setup_logger(name: str = "dundergrad") -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(logging._nameToLevel[os.environ.get(LOG_LEVEL_ENV_SETTER, "INFO").upper()])
    if not logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-10s%(funcName)s: - %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        )
        logger.addHandler(console_handler)
    return logger


default_logger = setup_logger()


class TensorLogger(callbacks.OnTensorInitCallBack, callbacks.OnBackwardCallBack):
    def __init__(self, logger: logging.Logger = default_logger) -> None:
        super().__init__()
        self._logger = logger

    def on_tensor_creation(self, tensor: autograd.AutoDiffable) -> None:
        if self._logger.isEnabledFor(logging.DEBUG):
            self._logger.log(
                logging.DEBUG,
                "%(op)-10s(%(in shapes)-20s) → %(out shape)s",
                {
                    "in shapes": ", ".join(map(str, (p.shape.dims for p in tensor.parents))),
                    "op": "LEAF" if tensor.op is None else tensor.op.name,
                    "out shape": repr(tensor.shape),
                },
            )

    def on_backward_step(self, tensor: autograd.AutoDiffable) -> None:
        if self._logger.isEnabledFor(logging.DEBUG):
            self._logger.log(
                logging.DEBUG,
                "%(op)-10s grad %(out shape)s → %(n parents)d parent(s)",
                {"op": tensor.op.name if tensor.op else "LEAF", "out shape": repr(tensor.shape), "n parents": len(tensor.parents)},
            )

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(verbosity={self._logger.level})"
