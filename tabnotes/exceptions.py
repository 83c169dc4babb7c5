class PersistenceFailed(Exception):
    """A note store could not complete a read or a write."""


class PersistenceReadFailure(PersistenceFailed):
    pass


class PersistenceWriteFailure(PersistenceFailed):
    pass
