# tcpcat example program: a threaded echo server to try tcpcat against.
#
# It prints the address it listens on. With --farewell, a line is sent when
# the client shuts down its write side, before the connection is closed.

import argparse
import socketserver

import tcpcat

parser = argparse.ArgumentParser()
parser.add_argument('--port', type=int, default=0)
parser.add_argument('--farewell', help='line to send after the client half-closes')
args = parser.parse_args()


class EchoHandler(socketserver.BaseRequestHandler):

    def handle(self):
        print('New connection from {0}'.format(tcpcat.saddr(self.client_address)), flush=True)
        while True:
            buf = self.request.recv(4096)
            if not buf:
                break
            self.request.sendall(buf)
        if args.farewell:
            self.request.sendall(args.farewell.encode('utf-8') + b'\n')
        print('Connection lost', flush=True)


class EchoServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    daemon_threads = True
    allow_reuse_address = True


server = EchoServer(('localhost', args.port), EchoHandler)
print('Listen on {0}'.format(tcpcat.saddr(server.server_address)), flush=True)
try:
    server.serve_forever()
except KeyboardInterrupt:
    pass
finally:
    server.server_close()
