# run.py
import os
from certchain.app import create_app

# Starts the Flask development server without relying on 'flask run'.

if __name__ == "__main__":
    os.environ['FLASK_APP'] = 'certchain.app'

    app = create_app()

    print("="*60)
    print(">>> Starting CertChain development server...")
    print("="*60)

    app.run(debug=app.config.get('DEBUG', False), host='0.0.0.0', port=5000)
