"""Plot geometry and unit conversions."""
