import os
import ssl
import uuid
import hashlib
import datetime
import logging
import tempfile

from asn1crypto import pem
from asn1crypto import x509 as asn1x509
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID

logger = logging.getLogger('asyshare.certprovisioner')


def format_fingerprint(digest:bytes):
	return ':'.join('%02X' % b for b in digest)


class CertProvisioner:
	"""
	Builds the TLS material the file server listens with.

	All public methods follow the (result..., err) convention: on failure the
	results are None and err holds the exception.
	"""
	@staticmethod
	def fingerprints(cert_data:bytes):
		"""Returns the SHA-256 and SHA-1 fingerprints of a PEM or DER encoded certificate"""
		if pem.detect(cert_data):
			_, _, cert_data = pem.unarmor(cert_data)
		cert = asn1x509.Certificate.load(cert_data)
		der = cert.dump()
		return format_fingerprint(hashlib.sha256(der).digest()), format_fingerprint(hashlib.sha1(der).digest())

	@staticmethod
	def fingerprint_of(certpath:str):
		try:
			with open(certpath, 'rb') as f:
				cert_data = f.read()
			fp256, fp1 = CertProvisioner.fingerprints(cert_data)
			return fp256, fp1, None
		except Exception as e:
			logger.exception('fingerprint_of')
			return None, None, e

	@staticmethod
	def load_context(certfile:str, keyfile:str, password:str = None):
		try:
			ssl_ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
			ssl_ctx.minimum_version = ssl.TLSVersion.TLSv1_2
			ssl_ctx.load_cert_chain(certfile=certfile, keyfile=keyfile, password=password)
			return ssl_ctx, None
		except Exception as e:
			logger.exception('load_context')
			return None, e

	@staticmethod
	def generate_selfsigned(cn = 'asyshare', on = 'asyshare', key_exp = 65537, key_size = 2048, days = 365):
		try:
			logger.debug('Generating self-signed certificate')
			one_day = datetime.timedelta(1, 0, 0)
			now = datetime.datetime.now(datetime.timezone.utc)
			private_key = rsa.generate_private_key(
				public_exponent=key_exp,
				key_size=key_size,
			)
			name = x509.Name([
				x509.NameAttribute(NameOID.COMMON_NAME, cn),
				x509.NameAttribute(NameOID.ORGANIZATION_NAME, on),
			])
			builder = x509.CertificateBuilder()
			builder = builder.subject_name(name)
			builder = builder.issuer_name(name)
			builder = builder.not_valid_before(now - one_day)
			builder = builder.not_valid_after(now + datetime.timedelta(days, 0, 0))
			builder = builder.serial_number(int(uuid.uuid4()))
			builder = builder.public_key(private_key.public_key())
			builder = builder.add_extension(
				x509.SubjectAlternativeName([x509.DNSName('localhost'), x509.DNSName(cn)]), critical=False,
			)
			builder = builder.add_extension(
				x509.BasicConstraints(ca=False, path_length=None), critical=True,
			)
			certificate = builder.sign(private_key=private_key, algorithm=hashes.SHA256())

			cert_pem = certificate.public_bytes(encoding=serialization.Encoding.PEM)
			key_pem = private_key.private_bytes(
				encoding=serialization.Encoding.PEM,
				format=serialization.PrivateFormat.TraditionalOpenSSL,
				encryption_algorithm=serialization.NoEncryption()
			)
			return cert_pem, key_pem, None
		except Exception as e:
			logger.exception('generate_selfsigned')
			return None, None, e

	@staticmethod
	def synthesize(cn = 'asyshare'):
		"""
		Creates an ephemeral key and self-signed certificate and loads them into a server context.
		The PEM material only touches the disk inside a private temporary directory
		which is removed before returning.

		Returns:
			(ssl.SSLContext, sha256 fingerprint, sha1 fingerprint, err)
		"""
		try:
			cert_pem, key_pem, err = CertProvisioner.generate_selfsigned(cn = cn)
			if err is not None:
				raise err

			with tempfile.TemporaryDirectory(prefix='asyshare_') as tmpdir:
				certfile = os.path.join(tmpdir, 'cert.pem')
				keyfile = os.path.join(tmpdir, 'key.pem')
				with open(certfile, 'wb') as f:
					f.write(cert_pem)
				with open(keyfile, 'wb') as f:
					f.write(key_pem)
				ssl_ctx, err = CertProvisioner.load_context(certfile, keyfile)
				if err is not None:
					raise err

			fp256, fp1 = CertProvisioner.fingerprints(cert_pem)
			return ssl_ctx, fp256, fp1, None
		except Exception as e:
			logger.exception('synthesize')
			return None, None, None, e
