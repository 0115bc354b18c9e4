"""
Application entry point.

Usage:
    python run.py

Starts the Flask development server on http://localhost:5000.
Demo credentials: demo / Str0ng&Secure!
"""

from cultureconnect import create_app
from cultureconnect.config import DevelopmentConfig
from cultureconnect.db import DEMO_PASSWORD, DEMO_USERNAME

app = create_app(config_class=DevelopmentConfig)

if __name__ == '__main__':
    print('\n  CultureConnect')
    print('  ==============')
    print(f'  Demo credentials: {DEMO_USERNAME} / {DEMO_PASSWORD}')
    print('  URL: http://localhost:5000\n')

    app.run(
        host='127.0.0.1',
        port=5000,
        debug=True,
    )
