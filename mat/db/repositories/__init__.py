from .vocabulary_repo import VocabularyRepo
from .term_repo import TermRepo
