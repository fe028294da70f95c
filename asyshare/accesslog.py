import logging

accesslogger = logging.getLogger('asyshare.access')


def log_access(remote_addr:str, method:str, path:str, protocol:str, status):
	accesslogger.info('%s - [%s] - "%s %s" - %s', remote_addr, method, path, protocol, status)

def log_message(text:str):
	accesslogger.info('%s', text)
