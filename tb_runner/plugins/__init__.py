"""Built-in bench suites."""

__all__: list[str] = []
