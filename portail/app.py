# module portail.app
from portail.app_setup.factory import create_app

# App globale
app = create_app()
