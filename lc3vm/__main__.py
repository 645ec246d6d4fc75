from .kernel import LC3VMKernel

if __name__ == '__main__':
    LC3VMKernel.run_as_main()
