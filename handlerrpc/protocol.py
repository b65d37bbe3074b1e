# -*- coding: utf-8 -*
#
#   protocol.py - Protocol dispatcher
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

import datetime
import json
import logging
from collections import namedtuple
import xmlrpc.client as xmlrpclib
from xmlrpc.client import Fault

from .handler import Handler, FunctionTable, as_handler

LOG = logging.getLogger(__name__)

__ALL__ = ["Dispatcher", "Result", "JsonRpc", "XmlRpc", "Fault", "InvocationFault",
           "UnknownNamespace", "UnknownMethod", "InternalInvocationError",
           "InvalidRequest", "MulticallFault"]

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
UNKNOWN_METHOD = -32601
INVALID_PARAMS = -32602
UNKNOWN_NAMESPACE = -32001
INTERNAL_ERROR = -32000

SYSTEM = "system"
MULTICALL = "system.multicall"


class InvocationFault(Fault):
    """Fault raised by handler code. Code and message reach the caller as given."""


class UnknownNamespace(Fault):
    def __init__(self, namespace):
        Fault.__init__(self, UNKNOWN_NAMESPACE, 'namespace "%s" is not registered' % namespace)
        self.namespace = namespace


class UnknownMethod(Fault):
    def __init__(self, namespace, method):
        Fault.__init__(self, UNKNOWN_METHOD, 'method "%s" is not supported' % join_name(namespace, method))
        self.namespace = namespace
        self.method = method


class InternalInvocationError(Fault):
    def __init__(self, exc):
        Fault.__init__(self, INTERNAL_ERROR, "%s: %s" % (type(exc).__name__, exc))
        self.exception = exc


class InvalidRequest(Fault):
    def __init__(self, message, code=INVALID_REQUEST):
        Fault.__init__(self, code, message)


class MulticallFault(Fault):
    """First fault found in a multicall response.

    ``index`` is the zero based position of the faulting call.
    """

    def __init__(self, index, method_name, fault_code, fault_string):
        Fault.__init__(self, fault_code, fault_string)
        self.index = index
        self.method_name = method_name

    def __str__(self):
        return "fault in call %d (%s) : %s" % (self.index, self.method_name, self.faultString)


def multicall_request(calls):
    calls = [(name, tuple(args)) for name, args in calls]
    payload = [{"methodName": name, "params": list(args)} for name, args in calls]
    return calls, payload


def multicall_results(calls, results):
    if len(results) != len(calls):
        raise ValueError("Expected %d multicall results, got %d" % (len(calls), len(results)))
    values = []
    for index, entry in enumerate(results):
        if isinstance(entry, dict):
            raise MulticallFault(index, calls[index][0],
                                 entry.get("faultCode"), entry.get("faultString"))
        values.append(entry[0])
    return values


def join_name(namespace, method):
    return "%s.%s" % (namespace, method) if namespace else method


def split_name(name):
    """Split ``service.upcase`` into ``("service", "upcase")``.

    The method is the part after the last dot; an undotted name addresses
    the root namespace ``""``.
    """
    namespace, _, method = name.rpartition(".")
    return namespace, method


class Result(namedtuple("Result", "value fault")):
    """Outcome of one dispatch: a success value or a fault, never both."""
    __slots__ = ()

    @classmethod
    def success(cls, value):
        return cls(value, None)

    @classmethod
    def failure(cls, fault):
        return cls(None, fault)

    @property
    def ok(self):
        return self.fault is None

    def unwrap(self):
        if self.fault is not None:
            raise self.fault
        return self.value


def _fault_struct(fault):
    return {"faultCode": fault.faultCode, "faultString": fault.faultString}


class _SystemMethods(Handler):
    """The reserved ``system`` namespace."""

    def __init__(self, dispatcher):
        self._dispatcher = dispatcher

    def listMethods(self):
        return self._dispatcher.method_names()

    def multicall(self, calls):
        if not isinstance(calls, (list, tuple)):
            raise InvalidRequest("system.multicall expects an array of calls")
        results = []
        for call in calls:
            try:
                name, params = self._unpack(call)
            except Fault as fault:
                results.append(_fault_struct(fault))
                continue
            result = self._dispatcher.call(name, params)
            if result.ok:
                results.append([result.value])
            else:
                results.append(_fault_struct(result.fault))
        return results

    @staticmethod
    def _unpack(call):
        if not isinstance(call, dict):
            raise InvalidRequest("system.multicall expected struct")
        name = call.get("methodName")
        if not isinstance(name, str) or not name:
            raise InvalidRequest("missing methodName")
        if name == MULTICALL:
            raise InvalidRequest("recursive system.multicall forbidden")
        params = call.get("params", [])
        if not isinstance(params, (list, tuple)):
            raise InvalidRequest("params must be an array")
        return name, params


class Dispatcher(object):
    """Handler registry. Routes (namespace, method, args) to a handler method."""

    def __init__(self):
        self.__handlers = {}
        self.__functions = FunctionTable()
        self.__system = _SystemMethods(self)

    def register(self, namespace, handler):
        if namespace == SYSTEM:
            raise ValueError('namespace "%s" is reserved' % SYSTEM)
        if namespace in self.__handlers:
            LOG.debug("Replacing handler for namespace %r", namespace)
        self.__handlers[namespace] = as_handler(handler)

    def register_function(self, func, name=None):
        """Register a loose function in the root namespace."""
        return self.__functions.register_function(func, name)

    def handler(self, namespace):
        if namespace == SYSTEM:
            return self.__system
        if not namespace:
            return self.__handlers.get(namespace, self.__functions)
        return self.__handlers.get(namespace)

    def namespaces(self):
        return sorted(self.__handlers)

    def method_names(self):
        names = [join_name(SYSTEM, m) for m in self.__system.methods()]
        if "" not in self.__handlers:
            names.extend(self.__functions.methods())
        for namespace, handler in self.__handlers.items():
            names.extend(join_name(namespace, m) for m in handler.methods())
        return sorted(set(names))

    def resolve(self, namespace, method):
        handler = self.handler(namespace)
        if handler is None:
            raise UnknownNamespace(namespace)
        func = handler.lookup(method)
        if func is None:
            raise UnknownMethod(namespace, method)
        return func

    def dispatch(self, namespace, method, args=()):
        try:
            func = self.resolve(namespace, method)
        except Fault as fault:
            LOG.debug("Unroutable call %s: %s", join_name(namespace, method), fault.faultString)
            return Result.failure(fault)

        try:
            value = func(*args)
        except Fault as fault:
            LOG.debug("%s raised fault %r: %s", join_name(namespace, method),
                      fault.faultCode, fault.faultString)
            return Result.failure(fault)
        except Exception as e:
            LOG.exception("Internal error in %s", join_name(namespace, method))
            return Result.failure(InternalInvocationError(e))

        if isinstance(value, Fault):
            return Result.failure(value)
        return Result.success(value)

    def call(self, name, args=()):
        namespace, method = split_name(name)
        return self.dispatch(namespace, method, args)


def _json_default(obj):
    if isinstance(obj, (datetime.datetime, datetime.date)):
        return obj.isoformat()
    if isinstance(obj, xmlrpclib.DateTime):
        return obj.value
    raise TypeError("Object of type %s is not JSON serializable" % type(obj).__name__)


def json_dumps(x):
    return bytes(json.dumps(x, default=_json_default), "utf8")


def json_loads(x):
    if isinstance(x, bytes):
        x = str(x, "utf8")
    return json.loads(x)


def xmlrpc_dumps(x, *a, **kw):
    # bytes must match the charset named in the XML declaration
    return xmlrpclib.dumps(x, *a, **kw).encode(kw.get("encoding") or "utf8", "xmlcharrefreplace")


def xmlrpc_loads(x, *a, **kw):
    # bytes go to expat as is, so it can honour the declared encoding
    return xmlrpclib.loads(x, *a, **kw)


class JsonRpc(object):
    def __init__(self, dispatcher=None, version=2):
        self.__id = 1
        self.__version = version
        self.__reqs = {}
        self.__dispatcher = dispatcher if dispatcher is not None else Dispatcher()

    @property
    def dispatcher(self):
        return self.__dispatcher

    def splitfmt(self):
        return "json"

    def initiate_request(self, method, args, kwargs, completion):
        if kwargs:
            raise NotImplementedError("Keyword arguments not supported in JSON-RPC mode")
        reqid = self.__id
        self.__id += 1
        if self.__version == 1:
            req = json_dumps({"method": method, "params": list(args), "id": reqid})
        else:
            req = json_dumps({"jsonrpc": "2.0", "method": method, "params": list(args), "id": reqid})
        self.__reqs[reqid] = completion
        return req

    def handle_response(self, rstr):
        response = json_loads(rstr)
        reqid = response.get("id")
        completion = self.__reqs.pop(reqid, None)
        if not completion:
            LOG.debug("Dropping response with unknown id %r", reqid)
            return
        e = response.get("error")
        if e is not None:
            ec = e.get("code", INTERNAL_ERROR)
            completion(None, Fault(ec, e.get("message", "#%s" % ec)))
        else:
            completion(response.get("result"), None)

    def dispatch_request(self, reqstr):
        response = self._dispatch_request(reqstr)
        if response is None:
            return None
        try:
            return json_dumps(response)
        except (TypeError, ValueError) as e:
            LOG.exception("Could not encode response")
            fault = InternalInvocationError(e)
            v = 2 if "jsonrpc" in response else 1
            return json_dumps(self._error(v, response.get("id"), fault.faultCode, fault.faultString))

    def _error(self, v, reqid, code, message):
        if v == 1:
            return {"result": None, "error": {"code": code, "message": message}, "id": reqid}
        return {"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": reqid}

    def _dispatch_request(self, reqstr):
        try:
            obj = json_loads(reqstr)
        except (TypeError, ValueError):
            return self._error(2, None, PARSE_ERROR, "Parse error")
        if not isinstance(obj, dict):
            return self._error(2, None, INVALID_REQUEST, "Invalid Request")
        v = None
        if "jsonrpc" in obj:
            if obj["jsonrpc"] == "2.0":
                v = 2
        else:
            v = 1
        method = obj.get("method")
        reqid = obj.get("id")
        notify = v == 2 and "id" not in obj
        if v is None or not isinstance(method, str):
            return self._error(v or 2, reqid, INVALID_REQUEST, "Invalid Request")
        prm = obj.get("params", [])
        if not isinstance(prm, list):
            return self._error(v, reqid, INVALID_PARAMS, "Invalid params")

        result = self.__dispatcher.call(method, prm)
        if notify:
            return None
        if not result.ok:
            f = result.fault
            return self._error(v, reqid, f.faultCode, f.faultString or ("#%s" % f.faultCode))
        if v == 1:
            return {"result": result.value, "error": None, "id": reqid}
        return {"jsonrpc": "2.0", "result": result.value, "id": reqid}

    def register(self, namespace, handler):
        self.__dispatcher.register(namespace, handler)

    def register_function(self, func, name=None):
        self.__dispatcher.register_function(func, name)


class XmlRpc(object):
    def __init__(self, dispatcher=None, encoding=None, allow_none=True, use_datetime=False):
        self.__queue = []
        self.__encoding = encoding
        self.__allow_none = allow_none
        self.__use_datetime = use_datetime
        self.__dispatcher = dispatcher if dispatcher is not None else Dispatcher()

    @property
    def dispatcher(self):
        return self.__dispatcher

    def splitfmt(self):
        return "xml"

    def initiate_request(self, method, args, kwargs, completion):
        if kwargs:
            raise NotImplementedError("Keyword arguments not supported in XML-RPC mode")
        self.__queue.append(completion)
        return xmlrpc_dumps(tuple(args), method, encoding=self.__encoding, allow_none=self.__allow_none)

    def handle_response(self, rstr):
        completion = self.__queue.pop(0)
        try:
            response = xmlrpc_loads(rstr, self.__use_datetime)
        except Fault as f:
            completion(None, f)
        else:
            completion(response[0][0], None)

    def _dumps(self, obj):
        return xmlrpc_dumps(obj, methodresponse=True,
                            allow_none=self.__allow_none, encoding=self.__encoding)

    def dispatch_request(self, reqstr):
        try:
            p, m = xmlrpc_loads(reqstr, self.__use_datetime)
        except Exception as e:
            LOG.debug("Unparseable XML-RPC request: %s", e)
            return self._dumps(InvalidRequest("Parse error: %s" % e, PARSE_ERROR))
        if m is None:
            return self._dumps(InvalidRequest("Request has no methodName"))

        result = self.__dispatcher.call(m, p)
        if not result.ok:
            return self._dumps(result.fault)
        try:
            return self._dumps((result.value,))
        except (TypeError, OverflowError, ValueError) as e:
            LOG.exception("Could not marshal result of %s", m)
            return self._dumps(InternalInvocationError(e))

    def register(self, namespace, handler):
        self.__dispatcher.register(namespace, handler)

    def register_function(self, func, name=None):
        self.__dispatcher.register_function(func, name)
