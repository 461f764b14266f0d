from rna_ali_fold.scripts.fold_alignment import main


if __name__ == '__main__':
    raise SystemExit(main())
