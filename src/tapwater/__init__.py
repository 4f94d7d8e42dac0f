"""Plan tap-water heating and desinfection sessions around spot prices."""

__version__ = "0.1.0"
