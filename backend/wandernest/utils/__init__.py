from .json_utils import dumps
from .errors import error_response, to_http_exception
from .email import send_email
