"""
Every mutation goes through the same steps: the input is prepared, the pre-hook fires,
the input is validated, the storage is called, and then the post-hook fires.

A pre-hook or a validation failure prevents the storage call.
A post-hook failure raises PostHookError, but the storage has already been modified by then:
the result is available as `PostHookError.result`.
"""

import logging
from typing import List, Mapping

from .document import Document
from .drivers.base import FindOptions
from .drivers.matcher import BOOLEAN_OPERATORS
from .exc import DisabledError, MalformedDescriptor, NotFound

logger = logging.getLogger(__name__)


class CrudHelper:
    """ Crud helper: create, save, update and delete documents of a Database

        This object is kept by the Database: it's initialized only once.

        The following methods are available:

        * create(descriptor): create a document from `{$collection, ...fields}`
        * save(descriptor): patch a document by `{$collection, $id, ...dotted paths}`
        * update(descriptor, patch): patch every document that matches a filter
        * delete(descriptor): delete a document by `$id`, or many with `$multiple`

    :type db: mongodoc.db.Database
    """

    def __init__(self, db):
        self.db = db

    # region Create

    def create(self, descriptor: Mapping) -> Document:
        """ Create a document

        Steps:

        1. Virtual fields run their setters
        2. Missing fields get their defaults; sub-document array entries get their ids
        3. The `create` hooks fire; they may modify the document
        4. The document is validated
        5. The document is inserted
        6. The `post_create` hooks fire with (descriptor, document)

        :param descriptor: {$collection, $data, $refetch, ...fields}
        :raises InvalidCollection: unknown collection
        :raises ValidationError: invalid fields
        :raises HookAborted: a `create` hook has failed
        :raises PostHookError: a `post_create` hook has failed
        """
        descriptor = _prepare_descriptor(descriptor)
        model = self.db.resolve(descriptor['$collection'])

        # Virtuals
        fields = _get_fields(descriptor)
        doc = Document(model, {k: v for k, v in fields.items() if k not in model.virtuals})
        for name in model.virtuals:
            if name in fields:
                doc[name] = fields[name]

        # Defaults
        data = dict(doc)
        model.schema.apply_defaults(data, generate_ids=True)

        # Hooks, validate
        model.hooks.fire('create', data)
        data = model.schema.validate(data)

        # Insert
        stored = self.db.driver.insert(model.collection, data)
        logger.debug('Created %s:%s', model.collection, stored['_id'])

        result = self._get_result(model, stored, descriptor)
        model.hooks.fire_post('post_create', result, descriptor, result)
        return result

    # endregion

    # region Save

    def save(self, descriptor: Mapping) -> Document:
        """ Save a document: set the given fields

        Every non-directive key of the descriptor is a dotted path to set.

        :param descriptor: {$collection, $id, $data, $refetch, ...dotted paths}
        :return: the refetched document; or, with `refetch=False`, the updated data wrapped into a document
        :raises MalformedDescriptor: no `$id`; or nothing to save while `err_blank_update` is on
        :raises NotFound: the document does not exist (unless `err_no_update` is off: then None is returned)
        :raises ValidationError: invalid fields
        :raises HookAborted: a `save` hook has failed
        :raises PostHookError: a `post_save` hook has failed
        """
        descriptor = _prepare_descriptor(descriptor)
        model = self.db.resolve(descriptor['$collection'])
        id = descriptor.get('$id')
        if id is None:
            raise MalformedDescriptor('save requires $id')

        patch = self._apply_virtuals(model, _get_fields(descriptor))
        patch['_id'] = id

        # Hooks
        model.hooks.fire('save', patch)
        patch.pop('_id', None)

        # Nothing to save
        if not patch:
            if self.db.settings.get('err_blank_update'):
                raise MalformedDescriptor('Nothing to save for "{}" of "{}"'.format(id, model.collection))
            return self.db.query({'$collection': model.collection, '$id': id,
                                  '$err_not_found': self.db.settings.get('err_no_update')})

        # Validate, save
        patch = model.schema.validate(patch, partial=True)
        updated = self.db.driver.update(model.collection, id, patch)
        if updated is None:
            if self.db.settings.get('err_no_update'):
                raise NotFound(model.collection, id)
            return None
        logger.debug('Saved %s:%s: %s', model.collection, id, ', '.join(patch))

        result = self._get_result(model, updated, descriptor)
        model.hooks.fire_post('post_save', result, patch, result)
        return result

    # endregion

    # region Update

    def update(self, descriptor: Mapping, patch: Mapping) -> int:
        """ Update every document that matches a filter

        :param descriptor: {$collection, $data, ...filter}
        :param patch: {dotted path: value}
        :return: The number of updated documents
        :raises ValidationError: invalid fields
        :raises HookAborted: an `update` hook has failed
        :raises PostHookError: a `post_update` hook has failed
        """
        descriptor = _prepare_descriptor(descriptor)
        model = self.db.resolve(descriptor['$collection'])
        patch = self._apply_virtuals(model, dict(patch))

        # Hooks, validate
        model.hooks.fire('update', descriptor, patch)
        patch = model.schema.validate(patch, partial=True)
        if not patch:
            if self.db.settings.get('err_blank_update'):
                raise MalformedDescriptor('Nothing to update in "{}"'.format(model.collection))
            return 0

        # Update
        n = 0
        for id in self._find_ids(model, descriptor):
            if self.db.driver.update(model.collection, id, patch) is not None:
                n += 1
        logger.debug('Updated %d documents in %s', n, model.collection)

        model.hooks.fire_post('post_update', n, descriptor, patch, n)
        return n

    # endregion

    # region Delete

    def delete(self, descriptor: Mapping) -> int:
        """ Delete documents

        * `{$collection, $id}`: delete one document
        * `{$collection, $multiple: True, ...filter}`: delete every document that matches.
          An empty filter is only allowed with the `remove_all` setting.

        The `delete` and `post_delete` hooks fire for every document, with `{'_id': id}`.

        :return: The number of deleted documents
        :raises NotFound: the `$id` does not exist (unless `$err_not_found=False`)
        :raises DisabledError: deleting everything while `remove_all` is off
        :raises MalformedDescriptor: neither `$id` nor `$multiple` given
        :raises HookAborted: a `delete` hook has failed
        :raises PostHookError: a `post_delete` hook has failed
        """
        descriptor = _prepare_descriptor(descriptor)
        model = self.db.resolve(descriptor['$collection'])

        if descriptor.get('$id') is not None:
            ids = [descriptor['$id']]
        elif descriptor.get('$multiple'):
            if not _get_filter(descriptor) and not self.db.settings.get('remove_all'):
                raise DisabledError('Deleting every document of "{}" requires the `remove_all` setting'
                                    .format(model.collection))
            ids = self._find_ids(model, descriptor)
        else:
            raise MalformedDescriptor('delete requires either $id, or $multiple')

        # Every pre-hook fires before anything is removed: one failure aborts them all
        queries = [(id, {'_id': id}) for id in ids]
        for id, query in queries:
            model.hooks.fire('delete', query)

        removed = [query for id, query in queries
                   if self.db.driver.remove(model.collection, id)]
        n = len(removed)
        logger.debug('Deleted %d documents from %s', n, model.collection)
        if not removed and descriptor.get('$id') is not None and descriptor.get('$err_not_found', True):
            raise NotFound(model.collection, descriptor['$id'])

        for query in removed:
            model.hooks.fire_post('post_delete', n, query)
        return n

    # endregion

    def _find_ids(self, model, descriptor: Mapping) -> List[str]:
        """ Find the ids of the documents that match the descriptor's filter """
        query = _get_filter(descriptor)
        bags = model.get_fks()
        if not any(k in BOOLEAN_OPERATORS or bags.resolving_ref(k) for k in query):
            # Plain conditions: no population needed
            docs = self.db.driver.find(model.collection, query, FindOptions(projection={'_id': 1}))
        else:
            docs = self.db.query(dict(query, **{'$collection': model.collection, '$plain': True}))
        return [doc['_id'] for doc in docs]

    def _apply_virtuals(self, model, fields: dict) -> dict:
        """ Run virtual setters: they turn virtual fields into real ones """
        virtual_names = [name for name in fields if name in model.virtuals]
        if not virtual_names:
            return fields
        scratch = Document(model, {})
        for name in virtual_names:
            scratch[name] = fields.pop(name)
        fields.update(scratch)
        return fields

    def _get_result(self, model, stored: dict, descriptor: Mapping) -> Document:
        """ The document to return after a write: refetched, or wrapped """
        refetch = descriptor.get('$refetch', self.db.settings.get('refetch'))
        if refetch:
            return self.db.query({'$collection': model.collection, '$id': stored['_id'],
                                  '$data': descriptor.get('$data')})
        return model.document(stored)


def _prepare_descriptor(descriptor: Mapping) -> dict:
    """ Copy a descriptor; compute `$data` """
    descriptor = dict(descriptor)
    if '$collection' not in descriptor:
        raise MalformedDescriptor('$collection is required')
    if callable(descriptor.get('$data')):
        descriptor['$data'] = descriptor['$data']()
    return descriptor


def _get_fields(descriptor: Mapping) -> dict:
    """ Non-directive keys of a descriptor """
    return {k: v for k, v in descriptor.items() if not k.startswith('$')}


def _get_filter(descriptor: Mapping) -> dict:
    """ Filter conditions of a descriptor """
    return {k: v for k, v in descriptor.items() if not k.startswith('$') or k in BOOLEAN_OPERATORS}
