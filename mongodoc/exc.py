class BaseMongoDocException(Exception):
    pass


# region Schema errors

class SchemaError(BaseMongoDocException):
    """ Invalid schema declaration """

    def __init__(self, collection: str, err: str):
        self.collection = collection
        super(SchemaError, self).__init__('Schema "{collection}": {err}'.format(collection=collection, err=err))


class DuplicateSchema(SchemaError):
    """ A schema with this name is already registered """

    def __init__(self, collection: str):
        super(DuplicateSchema, self).__init__(collection, 'already declared')

# endregion


# region Lookup errors

class NotFoundError(BaseMongoDocException):
    """ Something the caller referred to does not exist """


class InvalidCollection(NotFoundError):
    """ The query mentioned a collection that was never declared """

    def __init__(self, collection: str):
        self.collection = collection
        super(InvalidCollection, self).__init__('Unknown collection "{}"'.format(collection))


class NotFound(NotFoundError):
    """ A single-document lookup matched nothing

    Can be suppressed with `$err_not_found=False`
    """

    def __init__(self, collection: str, id=None):
        self.collection = collection
        self.id = id
        if id is None:
            msg = 'Not found in "{}"'.format(collection)
        else:
            msg = 'Document "{}" not found in "{}"'.format(id, collection)
        super(NotFound, self).__init__(msg)

# endregion


# region Input errors

class MalformedDescriptor(BaseMongoDocException):
    """ Invalid query descriptor provided by the User """

    def __init__(self, err: str):
        super(MalformedDescriptor, self).__init__('Query descriptor error: {err}'.format(err=err))


class DisabledError(MalformedDescriptor):
    """ The feature is disabled """


class PopulateError(MalformedDescriptor):
    """ A population path cannot be resolved """

    def __init__(self, collection: str, path: str, segment: str, err: str):
        self.collection = collection
        self.path = path
        self.segment = segment
        super(BaseMongoDocException, self).__init__(
            'Cannot populate "{path}" of "{collection}": {err} (at "{segment}")'.format(
                path=path,
                collection=collection,
                err=err,
                segment=segment)
        )


class ValidationError(BaseMongoDocException):
    """ A field value violates its declared type or enum """

    def __init__(self, collection: str, path: str, err: str):
        self.collection = collection
        self.path = path
        self.err = err
        super(ValidationError, self).__init__(
            'Invalid value for "{path}" of "{collection}": {err}'.format(
                path=path,
                collection=collection,
                err=err)
        )

# endregion


# region Hook errors

class HookAborted(BaseMongoDocException):
    """ A hook failed, and the operation was not performed

    The original error is available as `error`
    """

    def __init__(self, event: str, error: BaseException):
        self.event = event
        self.error = error
        super(HookAborted, self).__init__('Hook "{event}" aborted: {error}'.format(event=event, error=error))


class PostHookError(BaseMongoDocException):
    """ A post-hook failed after the storage was already modified

    The mutation is not rolled back: the result is available as `result`
    """

    def __init__(self, event: str, error: BaseException, result=None):
        self.event = event
        self.error = error
        self.result = result
        super(PostHookError, self).__init__('Post-hook "{event}" failed: {error}'.format(event=event, error=error))

# endregion
