"""relnote package.

relnote indexes a folder of notes and provides:
  1) An incremental embedding index (one vector per note, binary on disk)
  2) "Related notes" for any note and free-text semantic search
  3) Streamed "why related?" explanations from a local chat model

Entry points:
  - CLI: `relnote`
  - API: `relnote serve`
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
