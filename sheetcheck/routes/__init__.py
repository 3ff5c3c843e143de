# Routes package
from . import documents, evaluation, grades, scorer

__all__ = ["documents", "evaluation", "grades", "scorer"]
