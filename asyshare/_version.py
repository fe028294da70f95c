
__version__ = "0.1.0"
__banner__ = \
"""
# asyshare %s 
# Directory sharing over HTTP(S) with upload support
""" % __version__
