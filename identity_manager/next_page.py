"""Next page handling."""
import re
from typing import Optional, Pattern, Union


def good_next_page(next_page: Optional[str], default: str,
                   pattern: Union[str, Pattern]) -> str:
    """Checks if a next_page is good and returns it.

    If not good, it will return the default.
    """
    good = bool(next_page and len(next_page) < 300
                and '\\' not in next_page
                and (next_page == default or re.match(pattern, next_page)))
    return next_page if good and next_page else default
