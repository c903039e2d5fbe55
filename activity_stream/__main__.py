from activity_stream.main import main

main()
