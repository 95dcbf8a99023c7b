from timebox.models.item import Item
from timebox.models.planner import Planner
from timebox.models.priority import Priority
from timebox.models.time_block import ColorTag, TimeBlock

__all__ = ["Planner", "Item", "Priority", "TimeBlock", "ColorTag"]
