from stockroom import create_app

app = create_app()

if __name__ == "__main__":
    # Runs on all interfaces so the API is reachable from other devices
    app.run(host="0.0.0.0", port=5000, debug=True)
