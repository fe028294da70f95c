import os
import sys
import asyncio
import logging
import argparse

from asyshare import logger
from asyshare._version import __banner__, __version__
from asyshare.common.config import ServerConfig
from asyshare.fileserver import TransportError, run_file_server


def get_parser():
	parser = argparse.ArgumentParser(
		prog = 'asyshare',
		description = 'Share a directory over HTTP(S) for browsing, download and upload',
		formatter_class = argparse.RawDescriptionHelpFormatter,
		epilog = '''
Examples:
  %(prog)s                                # Serve the current directory on 0.0.0.0:8000
  %(prog)s -d /srv/files -p 9000          # Serve another directory on another port
  %(prog)s -s -ss                         # TLS with an ephemeral self-signed certificate
  %(prog)s -s -sk key.pem -sc cert.pem    # TLS with your own certificate
  %(prog)s -b s3cret                      # Require basic auth (user: asyshare)
''')
	parser.add_argument('-i', '--ip', default = '0.0.0.0', help = 'IP or interface to listen on')
	parser.add_argument('-p', '--port', type = int, default = 8000, help = 'Port to listen on')
	parser.add_argument('-d', '--dir', default = os.getcwd(), help = 'Web root directory')
	parser.add_argument('-s', '--ssl', action = 'store_true', help = 'Use TLS')
	parser.add_argument('-ss', '--self-signed', action = 'store_true', help = 'Use a self-signed certificate (implies -s)')
	parser.add_argument('-sk', '--server-key', default = None, help = 'Path to server key')
	parser.add_argument('-sc', '--server-cert', default = None, help = 'Path to server certificate')
	parser.add_argument('-b', '--basic-auth', default = None, help = 'Use basic auth with this password')
	parser.add_argument('-v', '--verbose', action = 'count', default = 0, help = 'Verbosity')
	parser.add_argument('--silent', action = 'store_true', help = 'Do not print banner')
	parser.add_argument('--version', action = 'version', version = 'asyshare %s' % __version__)
	return parser


def main(argv = None):
	args = get_parser().parse_args(argv)

	if args.verbose >= 1:
		logger.setLevel(logging.DEBUG)

	if args.silent is False:
		print(__banner__)

	config = ServerConfig.from_args(args)
	err = config.validate()
	if err is not None:
		logger.error(err)
		return 2

	logger.debug(str(config))

	try:
		asyncio.run(run_file_server(config))
	except KeyboardInterrupt:
		logger.info('Server stopped by user')
	except TransportError as e:
		logger.error(e)
		return 1
	return 0


if __name__ == '__main__':
	sys.exit(main())
