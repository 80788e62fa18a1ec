from .graph import build_steps
from .runner import StepRunner
from .build import Builder

__all__ = [
    'build_steps',
    'StepRunner',
    'Builder',
]
