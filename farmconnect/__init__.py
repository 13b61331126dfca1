"""
FarmConnect marketplace core.

Order lifecycle (place / confirm / ship / deliver / cancel), crop listing
inventory, buyer and farmer notifications, and the duplicate order cleanup
used for maintenance.
"""

__version__ = "0.1.0"
