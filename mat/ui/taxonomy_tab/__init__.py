from .taxonomy_widget import TaxonomyWidget, TreeState
