# tcpcat example program: a nc(1) like client, using the library directly

import sys
import argparse

import tcpcat

parser = argparse.ArgumentParser()
parser.add_argument('hostname')
parser.add_argument('port', type=int)
args = parser.parse_args()

remote = tcpcat.connect((args.hostname, args.port), timeout=10)
coordinator = tcpcat.ShutdownCoordinator()

stdin = tcpcat.StdinReader(sys.stdin.fileno())
stdin.start()

session = tcpcat.Session(remote, coordinator, stdin, sys.stdout.buffer)
with tcpcat.SignalListener(coordinator.request_shutdown):
    session.run()
