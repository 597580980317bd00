def rounded_percentage(part: int, whole: int) -> int:
    """
    Integer percentage of part/whole rounded half-up; 0 when whole is 0.

    Computed in integers so ties such as 1/8 (12.5%) always round to 13.
    """
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)
