#
# This file is part of fcgiwrap released under the MIT license.
# See the NOTICE for more information.

from fcgiwrap.cgi.responder import CGIResponder

__all__ = ['CGIResponder']
