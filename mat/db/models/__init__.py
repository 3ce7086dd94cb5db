from .mixins import Base
from .vocabulary import Vocabulary
from .term import Term, ROOT, MAX_ID
