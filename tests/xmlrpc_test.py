import unittest
import sys, os, json
if len(sys.argv) > 2 and sys.argv[1] == "serve":
    sys.path += json.loads(sys.argv[2])
import socket
import subprocess
import threading
import time
import xmlrpc.client
import handlerrpc
from handlerrpc.examples import Service
from handlerrpc.protocol import XmlRpc

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

def parameterless():
    return "Value"

def parameters(a, b):
    return "Value: %s, %s" % (a, b)

def passthrough(a):
    return a

def raise_exception():
    raise Exception("A regular Python exception")

def raise_fault():
    raise handlerrpc.Fault(42, "A Fault")


def register_all(rpc):
    rpc.register("service", Service())
    rpc.register_function(parameterless)
    rpc.register_function(parameters)
    rpc.register_function(passthrough)
    rpc.register_function(raise_exception)
    rpc.register_function(raise_fault)


class XmlTests(unittest.TestCase):
    def _servertype(self):
        return "handlerrpc.XmlServer"

    def _clienttype(self, process):
        return handlerrpc.XmlClient(process=process)

    def _testmodule(self):
        return "xmlrpc_test"

    def setUp(self):
        self._procs = []

    def tearDown(self):
        for proc in self._procs:
            proc.stdin.close()
            proc.wait(10)
            proc.stdout.close()

    def _server(self):
        proc = subprocess.Popen([sys.executable, "-mtests." + self._testmodule(), "serve", json.dumps(sys.path), self._servertype()],
                                stdin=subprocess.PIPE, stdout=subprocess.PIPE, cwd=ROOT_DIR)
        self._procs.append(proc)
        rpc = self._clienttype(proc)
        return rpc

    def test_unsupported_method(self):
        rpc = self._server()
        with self.assertRaises(handlerrpc.Fault) as cm:
            rpc.unsupported_method()
        self.assertEqual(cm.exception.faultCode, -32601)
        self.assertIn("is not supported", cm.exception.faultString)

    def test_unknown_namespace(self):
        rpc = self._server()
        with self.assertRaises(handlerrpc.Fault) as cm:
            rpc.bugzilla.login({})
        self.assertEqual(cm.exception.faultCode, -32001)

    def test_parameterless(self):
        rpc = self._server()
        value = rpc.parameterless()
        assert value == "Value"

    def test_parameters(self):
        rpc = self._server()
        value = rpc.parameters("Hello", True)
        assert value == "Value: Hello, True"

    def test_None(self):
        rpc = self._server()
        value = rpc.passthrough(None)
        assert value is None

    def test_list(self):
        rpc = self._server()
        input = [1,2,3,4,5]
        value = rpc.passthrough(input)
        assert value == input

    def test_boolean(self):
        rpc = self._server()
        value = rpc.passthrough(False)
        assert value == False

    def test_large_structure(self):
        rpc = self._server()
        input = list(range(100000))
        value = rpc.passthrough(input)
        assert value == input

    def test_exception(self):
        rpc = self._server()
        with self.assertRaises(handlerrpc.Fault) as cm:
            rpc.raise_exception()
        self.assertEqual(cm.exception.faultCode, -32000)
        self.assertIn("A regular Python exception", cm.exception.faultString)

    def test_fault(self):
        rpc = self._server()
        with self.assertRaises(handlerrpc.Fault) as cm:
            rpc.raise_fault()
        self.assertEqual(cm.exception.faultCode, 42)
        self.assertEqual(cm.exception.faultString, "A Fault")

    def test_namespaced_calls(self):
        rpc = self._server()
        self.assertEqual(rpc.service.upcase("xmlrpc"), "XMLRPC")
        self.assertEqual(rpc.service.sum(2, 3), 5)

    def test_service_error(self):
        rpc = self._server()
        with self.assertRaises(handlerrpc.Fault) as cm:
            rpc.service.error()
        self.assertEqual(cm.exception.faultCode, 101)
        self.assertEqual(cm.exception.faultString, "Error occuried.")

    def test_service_time(self):
        rpc = self._server()
        self.assertIsInstance(rpc.service.time(), xmlrpc.client.DateTime)

    def test_server_survives_faults(self):
        rpc = self._server()
        with self.assertRaises(handlerrpc.Fault):
            rpc.service.sum(1)
        self.assertEqual(rpc.service.sum(-1, 1), 0)

    def test_multicall(self):
        rpc = self._server()
        values = rpc.multicall([("service.upcase", ("abc",)), ("service.sum", (2, 3))])
        self.assertEqual(values, ["ABC", 5])

    def test_multicall_fault(self):
        rpc = self._server()
        with self.assertRaises(handlerrpc.MulticallFault) as cm:
            rpc.multicall([("service.upcase", ("abc",)), ("service.error", ())])
        self.assertEqual(cm.exception.index, 1)
        self.assertEqual(cm.exception.method_name, "service.error")
        self.assertEqual(cm.exception.faultCode, 101)


class TcpTests(unittest.TestCase):
    def setUp(self):
        self.server = handlerrpc.TcpServer(handlerrpc.ServerConfig("127.0.0.1", 0))
        register_all(self.server)
        self.thread = threading.Thread(target=self.server.serve)
        self.thread.daemon = True
        self.thread.start()
        while self.server.state == handlerrpc.IDLE:
            time.sleep(0.01)
        self.socks = []

    def tearDown(self):
        for sock in self.socks:
            sock.close()
        self.server.shutdown()
        self.thread.join(10)

    def _connect(self):
        sock = socket.create_connection(self.server.server_address[:2])
        self.socks.append(sock)
        return sock

    def test_xml_calls_in_order(self):
        rpc = handlerrpc.XmlClient(socket=self._connect())
        self.assertEqual(rpc.service.upcase("abc"), "ABC")
        self.assertEqual(rpc.service.upcase(""), "")
        self.assertEqual(rpc.service.sum(2, 3), 5)

    def test_json_over_tcp(self):
        rpc = handlerrpc.JsonClient(socket=self._connect())
        self.assertEqual(rpc.service.upcase("ABC"), "ABC")
        with self.assertRaises(handlerrpc.Fault) as cm:
            rpc.service.error()
        self.assertEqual(cm.exception.faultCode, 101)

    def test_concurrent_connections(self):
        first = handlerrpc.XmlClient(socket=self._connect())
        second = handlerrpc.JsonClient(socket=self._connect())
        self.assertEqual(first.service.sum(1, 2), 3)
        self.assertEqual(second.service.sum(3, 4), 7)
        self.assertEqual(first.parameterless(), "Value")

    def test_garbage_closes_only_that_connection(self):
        bad = self._connect()
        bad.sendall(b"garbage")
        bad.settimeout(10)
        self.assertEqual(bad.recv(1), b"")
        rpc = handlerrpc.XmlClient(socket=self._connect())
        self.assertEqual(rpc.service.sum(2, 3), 5)

    def test_state(self):
        self.assertEqual(self.server.state, handlerrpc.SERVING)
        with self.assertRaises(RuntimeError):
            self.server.serve()


class LifecycleTests(unittest.TestCase):
    def test_idle_until_served(self):
        server = handlerrpc.TcpServer(handlerrpc.ServerConfig("127.0.0.1", 0))
        self.assertEqual(server.state, handlerrpc.IDLE)
        server.shutdown()
        self.assertEqual(server.state, handlerrpc.STOPPED)
        with self.assertRaises(RuntimeError):
            server.serve()

    def test_default_config(self):
        self.assertEqual(handlerrpc.ServerConfig(), ("localhost", 5001))


class XmlDispatchTests(unittest.TestCase):
    def test_response_uses_declared_encoding(self):
        rpc = XmlRpc(encoding="iso-8859-1")
        rpc.register_function(passthrough)
        request = xmlrpc.client.dumps(("caf\u00e9",), "passthrough").encode("utf8")
        response = rpc.dispatch_request(request)
        self.assertTrue(response.startswith(b"<?xml version='1.0' encoding='iso-8859-1'?>"))
        self.assertIn(b"caf\xe9", response)
        self.assertEqual(xmlrpc.client.loads(response)[0], ("caf\u00e9",))

    def test_default_encoding_is_utf8(self):
        rpc = XmlRpc()
        rpc.register_function(passthrough)
        request = xmlrpc.client.dumps(("caf\u00e9",), "passthrough").encode("utf8")
        response = rpc.dispatch_request(request)
        self.assertIn("caf\u00e9".encode("utf8"), response)
        self.assertEqual(xmlrpc.client.loads(response)[0], ("caf\u00e9",))


if __name__ == '__main__':
    if len(sys.argv) > 3 and sys.argv[1] == "serve":
        rpc = eval(sys.argv[3])()
        register_all(rpc)
        rpc.serve_forever()
    else:
        unittest.main(verbosity=2)
