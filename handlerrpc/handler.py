# -*- coding: utf-8 -*
#
#   handler.py - Handler objects
#   handlerrpc - namespaced XML-RPC/JSON-RPC handler services
#
#   Copyright © 2015 Rickard Lyrenius
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.
#

"""Handler objects.

A handler is anything exposing ``lookup(name)`` (returning a callable or
``None``) and ``methods()`` (a mapping from method name to callable). Plain
objects are adapted with :func:`as_handler`, which looks their public
attributes up at call time.
"""

__ALL__ = ["Handler", "ObjectHandler", "FunctionTable", "as_handler"]


def _public(name):
    return bool(name) and not name.startswith("_")


class Handler(object):
    """Base class for handlers. Every public method of a subclass is exported."""

    _internal = ("lookup", "methods")

    def methods(self):
        exported = {}
        for name in dir(self):
            if not _public(name) or name in Handler._internal:
                continue
            attr = getattr(self, name)
            if callable(attr):
                exported[name] = attr
        return exported

    def lookup(self, name):
        if not _public(name) or name in Handler._internal:
            return None
        attr = getattr(self, name, None)
        return attr if callable(attr) else None


class ObjectHandler(Handler):
    """Exports the public callables of an arbitrary object."""

    def __init__(self, obj):
        self.__obj = obj

    @property
    def target(self):
        return self.__obj

    def methods(self):
        exported = {}
        for name in dir(self.__obj):
            if _public(name):
                attr = getattr(self.__obj, name)
                if callable(attr):
                    exported[name] = attr
        return exported

    def lookup(self, name):
        if not _public(name):
            return None
        attr = getattr(self.__obj, name, None)
        return attr if callable(attr) else None

    def __repr__(self):
        return "ObjectHandler(%r)" % (self.__obj,)


class FunctionTable(Handler):
    """Handler backed by an explicit name -> function table."""

    def __init__(self, functions=None):
        self.__functions = dict(functions or {})

    def register_function(self, func, name=None):
        self.__functions[name or func.__name__] = func
        return func

    def methods(self):
        return dict(self.__functions)

    def lookup(self, name):
        return self.__functions.get(name)

    def __len__(self):
        return len(self.__functions)


def as_handler(obj):
    if isinstance(obj, Handler):
        return obj
    if callable(getattr(obj, "lookup", None)) and callable(getattr(obj, "methods", None)):
        return obj
    return ObjectHandler(obj)
