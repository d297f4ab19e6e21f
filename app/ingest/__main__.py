from app.ingest.cli import main

main()
