"""deckedit: PPTX round-trip editing.

Extract an element model from a .pptx, patch edits back into the original
package and regenerate the archive.
"""

__version__ = "0.1.0"
