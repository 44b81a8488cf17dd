from src.issue_runner.cli import main

main()
