class DataIntegrityError(Exception):
    """
    Snapshot collections disagree with each other.

    Raised only when GRADEBOOK_STRICT_INTEGRITY is enabled; otherwise the
    problem is logged and attached to the report as a warning.
    """

    def __init__(self, message, student_id=None):
        super().__init__(message)
        self.student_id = student_id
