"""
FIGREPORT - Figure grids, animations and plots typeset into LaTeX reports

Assembles LaTeX documents from figure placements and renders them with
external tools, optionally across a pool of concurrent workers.

Architecture:
- Layout Context: Row/column placement of figures in a grid
- Composing Context: Markup accumulation for one report document
- Rendering Context: xelatex, ImageMagick and ffmpeg invocation
- Dispatch Context: Worker pool draining a queue of report jobs
"""

__version__ = "0.1.0"
