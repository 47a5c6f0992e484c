from tcga_gesp.cli import main

main()
