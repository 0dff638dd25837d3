#!/usr/bin/env python3
import sys
import os

# Add src to path so the sddsio package can be found
current_dir = os.path.dirname(os.path.abspath(__file__))
src_dir = os.path.join(current_dir, 'src')
sys.path.insert(0, src_dir)

from logserver.main import create_app

if __name__ == "__main__":
    app = create_app(os.environ.get('SDDSLOG_ROOT'))
    port = int(os.environ.get('SDDSLOG_PORT', 5000))
    print(f"Starting SDDS log server on http://localhost:{port} (root {app.config['SDDSLOG_ROOT']})")
    app.run(debug=False, host='0.0.0.0', port=port)
