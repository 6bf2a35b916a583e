from searchtype.visualizer.cards import parse_cards, write_cards
from searchtype.visualizer.runner import Screenshotter, VisualizerResult, run_visualizer

__all__ = [
    "Screenshotter",
    "VisualizerResult",
    "parse_cards",
    "run_visualizer",
    "write_cards",
]
