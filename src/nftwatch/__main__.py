from nftwatch.main import run

run()
