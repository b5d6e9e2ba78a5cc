"""codefactory — generate code from templates and sync hand edits back.

Templates are Handlebars files with front-matter. Generated code lives
in marker-delimited regions; editing a region and running sync recovers
the parameters that would produce the edit and re-renders from them.
"""

__version__ = "0.1.0"
