""" Hooks and event listeners

Hooks are blocking: they run in registration order, and any of them may abort the operation by raising.
Listeners run after all hooks have succeeded; their errors are logged, and never abort anything.

```python
users.hook('save', lambda descriptor: descriptor.setdefault('updated', datetime.now()))
users.on('post_save', lambda descriptor, doc: notify(doc))
```

Events fired by the Database:

* `query` (descriptor), `post_query` (descriptor, result)
* `create` (document), `post_create` (descriptor, document)
* `save` (patch), `post_save` (patch, document)
* `update` (descriptor, patch), `post_update` (descriptor, patch, count)
* `delete` ({'_id': id}), `post_delete` ({'_id': id})
"""

import logging
from collections import defaultdict
from enum import Enum
from typing import Callable, List

from .exc import HookAborted, PostHookError

logger = logging.getLogger(__name__)


class FIRE_STATE(Enum):
    """ States of a single firing of an event """
    PENDING = 'PENDING'
    RUNNING = 'RUNNING'
    FAILED = 'FAILED'
    HOOKS_DONE = 'HOOKS_DONE'
    COMPLETE = 'COMPLETE'


class Firing:
    """ A single firing of an event """

    def __init__(self, event: str, hooks: List[Callable], listeners: List[Callable]):
        self.event = event
        self.hooks = hooks
        self.listeners = listeners
        self.state = FIRE_STATE.PENDING
        #: The error that failed the firing
        self.error = None
        #: Errors raised by listeners: [(listener, error)]
        self.listener_errors = []

    def run(self, *args) -> 'Firing':
        """ Run the hooks, then the listeners

        :raises HookAborted: a hook has failed
        """
        self.state = FIRE_STATE.RUNNING
        for hook in self.hooks:
            try:
                hook(*args)
            except HookAborted as e:
                self.state = FIRE_STATE.FAILED
                self.error = e.error
                raise
            except Exception as e:
                self.state = FIRE_STATE.FAILED
                self.error = e
                raise HookAborted(self.event, e) from e
        self.state = FIRE_STATE.HOOKS_DONE

        for listener in self.listeners:
            try:
                listener(*args)
            except Exception as e:
                logger.exception('Listener %r for "%s" has failed', listener, self.event)
                self.listener_errors.append((listener, e))
        self.state = FIRE_STATE.COMPLETE
        return self


class HookRegistry:
    """ Hooks and listeners, by event name

    A registry may have a parent: its hooks and listeners run before our own.
    """

    def __init__(self, parent: 'HookRegistry' = None):
        self.parent = parent
        self._hooks = defaultdict(list)
        self._listeners = defaultdict(list)

    def hook(self, event: str, fn: Callable) -> Callable:
        """ Register a blocking hook """
        self._hooks[event].append(fn)
        return fn

    def on(self, event: str, fn: Callable) -> Callable:
        """ Register a listener """
        self._listeners[event].append(fn)
        return fn

    def off(self, event: str, fn: Callable = None):
        """ Remove a hook or listener, or everything registered for an event """
        if fn is None:
            self._hooks.pop(event, None)
            self._listeners.pop(event, None)
            return
        for store in (self._hooks, self._listeners):
            if fn in store.get(event, ()):
                store[event].remove(fn)

    def get_hooks(self, event: str) -> List[Callable]:
        parent = self.parent.get_hooks(event) if self.parent else []
        return parent + self._hooks.get(event, [])

    def get_listeners(self, event: str) -> List[Callable]:
        parent = self.parent.get_listeners(event) if self.parent else []
        return parent + self._listeners.get(event, [])

    def has_hooks(self, event: str) -> bool:
        return bool(self.get_hooks(event) or self.get_listeners(event))

    def fire(self, event: str, *args) -> Firing:
        """ Fire an event

        :raises HookAborted: a hook has failed
        """
        logger.debug('Firing "%s"', event)
        return Firing(event, self.get_hooks(event), self.get_listeners(event)).run(*args)

    def fire_post(self, event: str, result, *args) -> Firing:
        """ Fire an event after the storage was modified

        :raises PostHookError: a hook has failed. The result is available on the error.
        """
        try:
            return self.fire(event, *args)
        except HookAborted as e:
            logger.warning('Post-hook "%s" has failed after the storage was modified: %s', event, e.error)
            raise PostHookError(event, e.error, result) from e
