ELLIPSIS = ".."


def trim_for_display(value: str, max_length: int) -> str:
    """Return the first ``max_length`` characters of ``value`` followed by "..".

    The marker is always appended, also when nothing was cut off.
    """
    return f"{value[:max_length]}{ELLIPSIS}"
